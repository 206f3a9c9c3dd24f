import logging

import pytest

from gateway import middleware
from gateway.logging_filters import RequestIdFilter
from gateway.middleware import REQUEST_ID_CTX


def test_request_id_is_echoed(client):
    r = client.get("/api/orders/ping/", HTTP_X_REQUEST_ID="abc-123")
    assert r.status_code == 200
    assert r["X-Request-ID"] == "abc-123"


def test_request_id_is_generated(client):
    r = client.get("/api/orders/ping/")
    assert len(r["X-Request-ID"]) == 36


def test_oversized_api_body_is_rejected(client, monkeypatch):
    monkeypatch.setattr(middleware, "MAX_API_BYTES", 10)
    r = client.post("/api/orders/", data={"customer_name": "x" * 50}, content_type="application/json")
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"


@pytest.mark.django_db
def test_size_limit_ignores_other_paths(client, monkeypatch):
    monkeypatch.setattr(middleware, "MAX_API_BYTES", 1)
    assert client.get("/health/").status_code == 200


def test_filter_prefers_explicit_request_id():
    token = REQUEST_ID_CTX.set("ctx-id")
    try:
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        assert RequestIdFilter().filter(record)
        assert record.request_id == "ctx-id"

        explicit = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        explicit.request_id = "given"
        RequestIdFilter().filter(explicit)
        assert explicit.request_id == "given"
    finally:
        REQUEST_ID_CTX.reset(token)
