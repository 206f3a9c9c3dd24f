"""HTTP client for the messaging service.

``HttpMessagingClient`` is the production ``MessagingPort``. Every send is
guarded by a process-wide circuit breaker, retried with bounded exponential
backoff on transport errors and 5xx, and tagged with the caller's
``X-Request-ID`` and the fan-out's dedupe key as ``Idempotency-Key`` so the
messaging service can drop a retried duplicate.
"""

import os
import sys
import threading
import time
from contextlib import contextmanager
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX
from .notifications import MessagingPort


def _is_test_mode() -> bool:
    return "pytest" in sys.modules or os.environ.get("PYTEST_CURRENT_TEST") is not None


class CircuitOpenError(RuntimeError):
    pass


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Thread-safe breaker with CLOSED, OPEN and HALF_OPEN states.

    ``fail_threshold`` consecutive failures open the circuit. After
    ``reset_timeout`` seconds one probe call is let through (HALF_OPEN); its
    success closes the circuit and its failure opens it again.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probing = False

    @classmethod
    def from_settings(cls, name: str) -> "CircuitBreaker":
        return cls(
            name,
            getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
            getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
        )

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and time.monotonic() - self._opened_at >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probing = False
            return self._state

    def snapshot(self) -> dict:
        with self._lock:
            return {"circuit": self.state, "failures": self._failures}

    def before_call(self) -> str:
        """Admit a call or refuse it.

        Returns:
            str: The state the call was admitted in.

        Raises:
            CircuitOpenError: If the circuit is OPEN or a HALF_OPEN probe is
                already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError(f"{self.name}: CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probing:
                    raise CircuitOpenError(f"{self.name}: CIRCUIT_HALF_OPEN_BUSY")
                self._probing = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probing = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._state == "CLOSED" and self._failures >= self.fail_threshold):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probing = False

    @contextmanager
    def guard(self):
        """Admit one call and release a HALF_OPEN probe slot when it ends."""
        state = self.before_call()
        try:
            yield state
        finally:
            with self._lock:
                if self._state == "HALF_OPEN":
                    self._probing = False


_messaging_cb = CircuitBreaker.from_settings("messaging")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _max_attempts() -> int:
    return max(1, int(getattr(settings, "HTTP_RETRY_MAX", 3)))


def _backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    if _is_test_mode():
        return 0.0
    base = getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15)
    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
    return min(base * (2 ** (attempt - 1)), cap)


def _is_retriable(resp: Optional[httpx.Response]) -> bool:
    # transport errors arrive as resp=None
    return resp is None or 500 <= resp.status_code < 600


# ---------------- Messaging Adapter ---------------- #

class HttpMessagingClient(MessagingPort):
    """``MessagingPort`` backed by the messaging service's ``POST /messages``."""

    # 409: the key was already used, so the message is already queued.
    DELIVERED = frozenset({200, 201, 202, 409})

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.MESSAGING_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def send(self, phone: str, text: str, dedupe_key: Optional[str] = None) -> None:
        """Hand a WhatsApp message to the messaging service.

        Args:
            phone: Destination phone number.
            text: Message body.
            dedupe_key: Propagated as ``Idempotency-Key``.

        Raises:
            CircuitOpenError: If the breaker refuses the call.
            httpx.RequestError: For transport errors after the last attempt.
            httpx.HTTPStatusError: For a rejected message (4xx other than
                409) or when every attempt got a 5xx.
        """
        with _messaging_cb.guard() as state:
            extras = {"X-Circuit-State": state}
            if dedupe_key:
                extras["Idempotency-Key"] = dedupe_key
            headers = _request_headers(extras)
            with httpx.Client(timeout=self.timeout) as client:
                self._post_with_retry(client, {"to": phone, "body": text}, headers)

    def _post_with_retry(self, client: httpx.Client, payload: dict, headers: dict) -> None:
        url = f"{self.base_url}/messages"
        attempts = _max_attempts()
        for attempt in range(1, attempts + 1):
            headers["X-Retry-Count"] = str(attempt - 1)
            resp = None
            try:
                resp = client.post(url, json=payload, headers=headers)
            except httpx.RequestError:
                if attempt == attempts:
                    _messaging_cb.on_failure()
                    raise

            if resp is not None and resp.status_code in self.DELIVERED:
                _messaging_cb.on_success()
                return
            if not _is_retriable(resp):
                # the service is healthy, it just refused this message
                _messaging_cb.on_success()
                resp.raise_for_status()
            if attempt == attempts:
                _messaging_cb.on_failure()
                resp.raise_for_status()

            delay = _backoff_delay(attempt)
            if delay:
                time.sleep(delay)
