import pytest
from django.core import signing
from django.test import RequestFactory

from apps.orders.adapters import InMemoryShops
from apps.orders.authorization import (
    ADMIN,
    AuthorizationGate,
    Caller,
    caller_from_request,
    issue_merchant_token,
)
from apps.orders.domain import Forbidden, NotFound, Shop

rf = RequestFactory()

GATE = AuthorizationGate(
    InMemoryShops(
        Shop(id="s-1", name="Pizza Place", owner_id="merchant-1"),
        Shop(id="s-2", name="Orphan"),
    )
)


def test_owner_and_admin_are_authorized():
    assert GATE.authorize(Caller(merchant_id="merchant-1"), "s-1")
    assert GATE.authorize(ADMIN, "s-1")
    assert GATE.authorize(ADMIN, "s-2")


def test_others_are_not_authorized():
    assert not GATE.authorize(Caller(merchant_id="merchant-2"), "s-1")
    assert not GATE.authorize(Caller(), "s-1")
    assert not GATE.authorize(None, "s-1")
    # a shop without an owner is admin-only
    assert not GATE.authorize(Caller(merchant_id="merchant-1"), "s-2")


def test_ensure_can_mutate_raises():
    with pytest.raises(Forbidden):
        GATE.ensure_can_mutate(Caller(merchant_id="merchant-2"), "s-1")
    with pytest.raises(NotFound):
        GATE.ensure_can_mutate(ADMIN, "missing")


def test_admin_key_resolves_admin(settings):
    settings.API_KEY = "k3y"
    assert caller_from_request(rf.get("/", HTTP_X_API_KEY="k3y")) == ADMIN
    assert caller_from_request(rf.get("/", HTTP_X_API_KEY="wrong")) is None


def test_admin_key_disabled_when_unset(settings):
    settings.API_KEY = ""
    assert caller_from_request(rf.get("/", HTTP_X_API_KEY="")) is None


def test_merchant_token_round_trip():
    token = issue_merchant_token("merchant-9")
    caller = caller_from_request(rf.get("/", HTTP_AUTHORIZATION=f"Bearer {token}"))
    assert caller == Caller(merchant_id="merchant-9")


def test_bad_tokens_resolve_nobody():
    assert caller_from_request(rf.get("/", HTTP_AUTHORIZATION="Bearer nonsense")) is None
    assert caller_from_request(rf.get("/", HTTP_AUTHORIZATION="Basic abc")) is None
    assert caller_from_request(rf.get("/")) is None
    other_salt = signing.dumps({"merchant_id": "merchant-1"}, salt="something-else")
    assert caller_from_request(rf.get("/", HTTP_AUTHORIZATION=f"Bearer {other_salt}")) is None


def test_expired_token_is_rejected(settings):
    token = issue_merchant_token("merchant-1")
    settings.MERCHANT_TOKEN_MAX_AGE = -1
    assert caller_from_request(rf.get("/", HTTP_AUTHORIZATION=f"Bearer {token}")) is None
