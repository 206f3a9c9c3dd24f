# Project imports stay inside fixtures: this module can load before Django is set up.
import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.NOTIFICATIONS_INLINE = True
    settings.API_KEY = "test-admin-key"
    from django.core.cache import cache

    # throttle counters live in the default cache
    cache.clear()


@pytest.fixture
def messenger(monkeypatch):
    """Replace the outbound messenger with an in-memory recorder."""
    from apps.orders import providers
    from apps.orders.adapters import RecordingMessenger

    rec = RecordingMessenger()
    monkeypatch.setattr(providers, "get_messenger", lambda: rec, raising=True)
    return rec


@pytest.fixture
def hub(monkeypatch):
    """A fresh real-time hub shared by the views for the duration of a test."""
    from apps.orders import providers
    from apps.orders.realtime import RealtimeHub

    h = RealtimeHub(queue_size=10)
    monkeypatch.setattr(providers, "get_realtime_hub", lambda: h, raising=True)
    return h


@pytest.fixture
def shop(db):
    from apps.orders.models import MenuItemModel, ShopModel

    s = ShopModel.objects.create(name="Pizza Place", phone="+919800000001", owner_id="merchant-1")
    MenuItemModel.objects.create(shop=s, name="Pizza", price=150, external_id="PZ1")
    MenuItemModel.objects.create(shop=s, name="Coke", price=40, external_id="CK1")
    MenuItemModel.objects.create(shop=s, name="Old Special", price=99, external_id="OS1", available=False)
    return s


@pytest.fixture
def owner_headers():
    from apps.orders.authorization import issue_merchant_token

    return {"HTTP_AUTHORIZATION": f"Bearer {issue_merchant_token('merchant-1')}"}


@pytest.fixture
def stranger_headers():
    from apps.orders.authorization import issue_merchant_token

    return {"HTTP_AUTHORIZATION": f"Bearer {issue_merchant_token('merchant-2')}"}


@pytest.fixture
def admin_headers():
    return {"HTTP_X_API_KEY": "test-admin-key"}


@pytest.fixture
def app_logs(caplog):
    """``caplog`` that also sees the ``apps`` loggers, which do not propagate."""
    import logging

    app_logger = logging.getLogger("apps")
    app_logger.addHandler(caplog.handler)
    yield caplog
    app_logger.removeHandler(caplog.handler)
