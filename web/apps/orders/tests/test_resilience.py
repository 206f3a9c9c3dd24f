import httpx
import pytest

from apps.orders.http_adapters import CircuitBreaker, CircuitOpenError, HttpMessagingClient, _messaging_cb


def _resp(status_code):
    return httpx.Response(status_code, request=httpx.Request("POST", "http://x/messages"))


def test_messaging_retries_on_5xx(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    _messaging_cb.on_success()

    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        # first attempt fails, second one is accepted
        if calls["n"] == 1:
            return _resp(503)
        assert headers["X-Retry-Count"] == "1"
        return _resp(202)

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    HttpMessagingClient(base_url="http://x").send("+919811111111", "hi", dedupe_key="k1")
    assert calls["n"] == 2


def test_messaging_gives_up_after_max_attempts(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    _messaging_cb.on_success()
    calls = {"n": 0}

    def fake_post(self, url, **kwargs):
        calls["n"] += 1
        return _resp(500)

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(httpx.HTTPStatusError):
        HttpMessagingClient(base_url="http://x").send("+1", "hi")
    assert calls["n"] == 3
    _messaging_cb.on_success()


def test_circuit_opens_after_threshold_and_probes_after_timeout(monkeypatch):
    now = {"t": 100.0}
    monkeypatch.setattr("apps.orders.http_adapters.time.monotonic", lambda: now["t"])
    cb = CircuitBreaker("test", fail_threshold=2, reset_timeout=10.0)

    cb.on_failure()
    assert cb.state == "CLOSED"
    cb.on_failure()
    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        cb.before_call()

    now["t"] += 10.0
    assert cb.before_call() == "HALF_OPEN"
    # only one probe at a time
    with pytest.raises(CircuitOpenError):
        cb.before_call()

    cb.on_failure()
    assert cb.state == "OPEN"

    now["t"] += 10.0
    cb.before_call()
    cb.on_success()
    assert cb.state == "CLOSED"


def test_open_circuit_short_circuits_send(monkeypatch):
    def fake_post(self, url, **kwargs):
        raise AssertionError("no call expected while the circuit is open")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    for _ in range(_messaging_cb.fail_threshold):
        _messaging_cb.on_failure()
    try:
        with pytest.raises(CircuitOpenError):
            HttpMessagingClient(base_url="http://x").send("+1", "hi")
    finally:
        _messaging_cb.on_success()
