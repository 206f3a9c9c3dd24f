"""In-process stub adapters for the orders domain ports.

These stubs implement the persistence, menu, shop and messaging ports
without a database or network calls. They are intended for unit tests and
local development where deterministic behavior is useful and external
services are not required.
"""

import logging
import threading
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from .domain import (
    MenuEntry,
    MenuPort,
    Order,
    OrderStatus,
    OrderStorePort,
    SequencePort,
    Shop,
    ShopDirectoryPort,
    StorageUnavailable,
)
from .notifications import MessagingPort


logger = logging.getLogger(__name__)


class InMemorySequenceAllocator(SequencePort):
    """Stub implementation of ``SequencePort``.

    The read-increment-write runs under one lock so concurrent callers never
    observe the same value. Setting ``available`` to False simulates an
    unreachable store.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self.available = True

    def allocate(self, sequence_name: str) -> int:
        if not self.available:
            raise StorageUnavailable("sequence store unavailable")
        with self._lock:
            value = self._counters.get(sequence_name, 0) + 1
            self._counters[sequence_name] = value
            return value

    def current(self, sequence_name: str) -> int:
        with self._lock:
            return self._counters.get(sequence_name, 0)


class InMemoryOrderStore(OrderStorePort):
    """Stub implementation of ``OrderStorePort`` backed by a dict."""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self.available = True

    def insert(self, order: Order) -> Order:
        if not self.available:
            raise StorageUnavailable("order store unavailable")
        saved = replace(order, id=str(uuid.uuid4()))
        with self._lock:
            self._orders[saved.id] = saved
        return saved

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(str(order_id))

    def update_status(self, order_id: str, expected: OrderStatus, new: OrderStatus) -> bool:
        with self._lock:
            current = self._orders.get(str(order_id))
            if current is None or current.status != expected:
                return False
            self._orders[current.id] = current.with_status(new)
            return True

    def list_by_shop(self, shop_id: str, limit: int = 200, offset: int = 0) -> List[Order]:
        with self._lock:
            rows = [o for o in self._orders.values() if o.shop_id == shop_id]
        rows.sort(key=lambda o: (o.created_at, o.sequence_number), reverse=True)
        return rows[offset:offset + max(0, limit)]

    def count_by_shop(self, shop_id: str) -> int:
        with self._lock:
            return sum(1 for o in self._orders.values() if o.shop_id == shop_id)

    def count(self) -> int:
        with self._lock:
            return len(self._orders)


class InMemoryMenu(MenuPort):
    def __init__(self, entries: Optional[Dict[str, List[MenuEntry]]] = None):
        self.entries = entries or {}

    def list_entries(self, shop_id: str) -> List[MenuEntry]:
        return list(self.entries.get(shop_id, []))

    def set_price(self, shop_id: str, item_id: str, price: int) -> None:
        self.entries[shop_id] = [
            MenuEntry(m.item_id, m.name, price, m.available, m.code) if m.item_id == item_id else m
            for m in self.entries.get(shop_id, [])
        ]


class InMemoryShops(ShopDirectoryPort):
    def __init__(self, *shops: Shop):
        self.shops = {s.id: s for s in shops}

    def get(self, shop_id: str) -> Optional[Shop]:
        return self.shops.get(str(shop_id))


class LoggingMessenger(MessagingPort):
    """Stub implementation of ``MessagingPort``.

    Logs the message instead of sending it, matching what production does
    when no messaging service is configured.
    """

    def send(self, phone: str, text: str, dedupe_key: Optional[str] = None) -> None:
        logger.info("messaging not configured, skipping send", extra={"to": phone, "body": text})


class RecordingMessenger(MessagingPort):
    """Messenger that records sent messages in memory for test assertions."""

    def __init__(self):
        self.sent: List[dict] = []
        self.should_fail = False

    def send(self, phone: str, text: str, dedupe_key: Optional[str] = None) -> None:
        self.sent.append({"to": phone, "body": text, "dedupe_key": dedupe_key})
        if self.should_fail:
            raise RuntimeError("MESSAGING_UNAVAILABLE")

    def reset(self) -> None:
        self.sent.clear()
        self.should_fail = False
