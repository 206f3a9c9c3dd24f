"""Service provider helpers for wiring OrderLifecycle with its ports.

This module exposes small factory functions that return the configured
``OrderLifecycle`` and the process-wide real-time hub. Persistence always
goes through the Django ORM repositories. Outbound WhatsApp messages use the
HTTP messaging client when ``settings.USE_HTTP_ADAPTERS`` is truthy, and
otherwise fall back to a messenger that only logs, suitable for tests and
local development.
"""

import threading

from django.conf import settings

from .authorization import AuthorizationGate
from .domain import DEFAULT_SEQUENCE_NAME, OrderLifecycle
from .adapters import LoggingMessenger
from .http_adapters import HttpMessagingClient
from .notifications import InlineExecutor, NotificationFanout, default_executor
from .realtime import RealtimeHub
from .repository import MenuRepository, OrderRepository, SequenceAllocator, ShopRepository


_lock = threading.Lock()
_hub = None
_executor = None


def get_realtime_hub() -> RealtimeHub:
    """Return the process-wide hub shared by publishers and event streams."""
    global _hub
    with _lock:
        if _hub is None:
            _hub = RealtimeHub(queue_size=getattr(settings, "REALTIME_QUEUE_SIZE", 100))
        return _hub


def get_notification_executor():
    global _executor
    if getattr(settings, "NOTIFICATIONS_INLINE", False):
        return InlineExecutor()
    with _lock:
        if _executor is None:
            _executor = default_executor(getattr(settings, "NOTIFY_WORKERS", 4))
        return _executor


def get_messenger():
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpMessagingClient()
    return LoggingMessenger()


def get_notifier() -> NotificationFanout:
    return NotificationFanout(
        hub=get_realtime_hub(),
        messenger=get_messenger(),
        executor=get_notification_executor(),
    )


def get_order_lifecycle() -> OrderLifecycle:
    """Return a configured OrderLifecycle instance.

    Returns:
        OrderLifecycle: A service backed by the ORM repositories and the
        notification fan-out selected by settings.
    """
    shops = ShopRepository()
    return OrderLifecycle(
        orders=OrderRepository(),
        sequences=SequenceAllocator(),
        menus=MenuRepository(),
        shops=shops,
        notifier=get_notifier(),
        gate=AuthorizationGate(shops),
        sequence_name=getattr(settings, "ORDER_SEQUENCE_NAME", DEFAULT_SEQUENCE_NAME),
    )
