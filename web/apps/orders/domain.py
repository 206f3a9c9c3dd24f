"""Domain models, ports and service for the order lifecycle.

This module contains the dataclasses used as DTOs for orders and their line
items, the ranked status enumeration with its single transition rule, the
domain errors, protocol definitions (ports) for the persistence, menu, shop
and notification collaborators, and the ``OrderLifecycle`` service that
creates orders and moves them through their statuses.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol, List, Optional, Sequence, Any
from enum import Enum


logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE_NAME = "orderNumber"


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    The happy path is ranked ``RECEIVED < ACCEPTED < PACKED <
    OUT_FOR_DELIVERY < DELIVERED``. ``CANCELLED`` and ``FAILED`` can be
    reached from any non-terminal status and are absorbing.
    """

    RECEIVED = "received"
    ACCEPTED = "accepted"
    PACKED = "packed"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        """Normalize a raw status string into an ``OrderStatus``.

        Dashboards historically sent ``out-for-delivery``; dashes and case are
        normalized before lookup.

        Raises:
            UnknownStatus: When the value names no known status.
        """
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise UnknownStatus(f"Unknown status '{value}'") from None


_RANKS = {
    OrderStatus.RECEIVED: 0,
    OrderStatus.ACCEPTED: 1,
    OrderStatus.PACKED: 2,
    OrderStatus.OUT_FOR_DELIVERY: 3,
    OrderStatus.DELIVERED: 4,
    # Terminal failure states outrank every happy-path status.
    OrderStatus.CANCELLED: 5,
    OrderStatus.FAILED: 5,
}

TERMINAL_STATUSES = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.FAILED}
)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Return True when an order may move from ``current`` to ``new``.

    Moves are strictly forward by rank, so re-applying the current status or
    going backwards is rejected. Terminal statuses admit no move at all.
    """
    if current.is_terminal:
        return False
    return new.rank > current.rank


# ---- Errors ----
class OrderError(ValueError):
    """Base class for order lifecycle errors.

    ``str(error)`` is the short error code (e.g. ``"EMPTY_ORDER"``) so callers
    can branch on it the same way they branch on ``ValueError`` codes; the
    human readable text lives in ``message``.
    """

    code = "ORDER_ERROR"
    http_status = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(self.code)
        self.message = message or self.code


class EmptyOrder(OrderError):
    code = "EMPTY_ORDER"
    http_status = 400


class NotFound(OrderError):
    code = "NOT_FOUND"
    http_status = 404


class Forbidden(OrderError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidTransition(OrderError):
    code = "INVALID_TRANSITION"
    http_status = 409


class UnknownStatus(InvalidTransition):
    """A status string that names no ``OrderStatus``; a client input error."""

    code = "VALIDATION_ERROR"
    http_status = 400


class StorageUnavailable(OrderError):
    code = "STORAGE_UNAVAILABLE"
    http_status = 503


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class MenuEntry:
    """A priced entry on a shop's live menu.

    Attributes:
        item_id: Internal identifier of the menu item.
        name: Display name.
        price: Current unit price in whole currency units.
        available: Whether the shop currently offers the item.
        code: Short external code customers type in the WhatsApp bot.
    """

    item_id: str
    name: str
    price: int
    available: bool = True
    code: Optional[str] = None


@dataclass(frozen=True)
class RequestedItem:
    """A line item as supplied by the client, before price capture."""

    name: Optional[str]
    qty: int = 1
    item_id: Optional[str] = None
    price: Optional[int] = None


@dataclass(frozen=True)
class LineItem:
    """A single line item in an order, with its price fixed at order time.

    The dataclass is frozen because items are immutable once captured.
    """

    name: str
    qty: int
    unit_price: int
    item_id: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.qty * self.unit_price


@dataclass(frozen=True)
class Shop:
    id: str
    name: str
    phone: Optional[str] = None
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class Order:
    """Container for order data.

    Attributes:
        id: Persistent identifier, or None if not yet saved.
        sequence_number: Merchant-facing order counter.
        shop_id: Owning shop.
        customer_name: Name the customer ordered under.
        phone: Destination for WhatsApp notifications.
        address: Optional free text or structured delivery location.
        items: Line items captured at creation.
        total: Sum of line totals, stored and never recomputed on read.
        status: Current OrderStatus.
        created_at: Creation timestamp.

    The dataclass is frozen; a status change produces a new instance via
    ``with_status`` and items cannot change after creation.
    """

    id: Optional[str]
    sequence_number: int
    shop_id: str
    customer_name: str
    phone: str
    items: tuple
    total: int
    status: OrderStatus = OrderStatus.RECEIVED
    address: Any = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_status(self, status: OrderStatus) -> "Order":
        return replace(self, status=status)


def compute_total(items: Sequence[LineItem]) -> int:
    return sum(it.line_total for it in items)


def resolve_line_item(requested: RequestedItem, menu: Sequence[MenuEntry]) -> LineItem:
    """Capture the unit price of a requested item against the live menu.

    Resolution order:
        1. match by item identity (menu id or short code),
        2. match by exact name,
        3. trust the client-supplied price.

    The third tier is an accepted risk: the price is not corrected, but the
    fallback is logged so it can be audited.

    Args:
        requested: Item reference as supplied by the client.
        menu: Entries currently listed by the shop.

    Returns:
        LineItem: The captured line item.
    """
    match = None
    if requested.item_id:
        ref = str(requested.item_id)
        match = next((m for m in menu if m.item_id == ref or (m.code and m.code == ref)), None)
    if match is None and requested.name:
        match = next((m for m in menu if m.name == requested.name), None)

    if match is not None:
        return LineItem(name=match.name, qty=requested.qty, unit_price=int(match.price), item_id=match.item_id)

    logger.warning(
        "menu item not found, trusting client price",
        extra={"item_name": requested.name, "item_ref": requested.item_id, "client_price": requested.price},
    )
    return LineItem(
        name=requested.name or str(requested.item_id or ""),
        qty=requested.qty,
        unit_price=int(requested.price or 0),
        item_id=requested.item_id,
    )


# ---- Ports (DIP) ----
class SequencePort(Protocol):
    """Port for named, monotonically increasing counters."""

    def allocate(self, sequence_name: str) -> int:
        """Atomically increment the named counter and return the new value.

        A counter that does not exist yet starts at 0, so the first call
        returns 1.

        Raises:
            StorageUnavailable: If the counter could not be persisted.
        """
        raise NotImplementedError()


class OrderStorePort(Protocol):
    """Port describing order persistence used by the domain."""

    def insert(self, order: Order) -> Order:
        """Persist a new order and return it with its generated id."""
        raise NotImplementedError()

    def get(self, order_id: str) -> Optional[Order]:
        raise NotImplementedError()

    def update_status(self, order_id: str, expected: OrderStatus, new: OrderStatus) -> bool:
        """Set ``new`` only if the stored status still equals ``expected``.

        Returns:
            True if the row was updated, False when another writer got there
            first.
        """
        raise NotImplementedError()

    def list_by_shop(self, shop_id: str, limit: int = 200, offset: int = 0) -> List[Order]:
        """Return a window of the shop's orders, newest first."""
        raise NotImplementedError()

    def count_by_shop(self, shop_id: str) -> int:
        raise NotImplementedError()


class MenuPort(Protocol):
    def list_entries(self, shop_id: str) -> List[MenuEntry]:
        raise NotImplementedError()


class ShopDirectoryPort(Protocol):
    def get(self, shop_id: str) -> Optional[Shop]:
        raise NotImplementedError()


class NotifierPort(Protocol):
    """Port for propagating order changes to downstream channels.

    Implementations must never raise: the change they report has already
    been committed.
    """

    def order_created(self, order: Order, shop: Optional[Shop] = None) -> None:
        raise NotImplementedError()

    def status_changed(self, order: Order, previous: OrderStatus) -> None:
        raise NotImplementedError()


class _KeyedLocks:
    """Hands out one lock per key; idle locks are dropped on release."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict = {}

    def acquire(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        return entry

    def release(self, key: str, entry) -> None:
        entry[0].release()
        with self._guard:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(key, None)


# Shared by every service instance in the process; one lifecycle is built per request.
_ORDER_LOCKS = _KeyedLocks()


# ---- Domain service ----
class OrderLifecycle:
    """Domain service that creates orders and applies status transitions.

    The service persists every change before handing it to the notifier, and
    notifies for one order under a per-order lock so subscribers see
    transitions in the order they were stored.
    """

    def __init__(
        self,
        orders: OrderStorePort,
        sequences: SequencePort,
        menus: MenuPort,
        shops: ShopDirectoryPort,
        notifier: NotifierPort,
        gate,
        sequence_name: str = DEFAULT_SEQUENCE_NAME,
    ):
        """Initialize the service with required dependencies.

        Args:
            orders: Order persistence.
            sequences: Counter allocator for sequence numbers.
            menus: Read access to live shop menus.
            shops: Read access to shops and their owners.
            notifier: Fan-out of committed changes.
            gate: ``AuthorizationGate`` deciding who may mutate a shop's
                orders.
            sequence_name: Counter used for order numbers.
        """
        self.orders = orders
        self.sequences = sequences
        self.menus = menus
        self.shops = shops
        self.notifier = notifier
        self.gate = gate
        self.sequence_name = sequence_name
        self._locks = _ORDER_LOCKS

    def create_order(
        self,
        shop_id: str,
        customer_name: str,
        phone: str,
        address: Any,
        requested_items: Sequence[RequestedItem],
    ) -> Order:
        """Create an order in ``received`` status.

        Prices are captured from the shop's current menu, a sequence number
        is allocated and the order is persisted before the creation event is
        fanned out.

        Returns:
            The persisted Order including its id and sequence number.

        Raises:
            EmptyOrder: If ``requested_items`` is empty. Nothing is allocated.
            NotFound: If the shop does not exist.
            StorageUnavailable: If allocation or persistence fails.
        """
        if not requested_items:
            raise EmptyOrder("An order needs at least one item")

        shop = self.shops.get(shop_id)
        if shop is None:
            raise NotFound(f"Shop {shop_id} not found")

        menu = self.menus.list_entries(shop.id)
        items = tuple(resolve_line_item(r, menu) for r in requested_items)

        # A failure past this point leaves a gap in the numbering, never a reused number.
        seq = self.sequences.allocate(self.sequence_name)
        order = Order(
            id=None,
            sequence_number=seq,
            shop_id=shop.id,
            customer_name=customer_name,
            phone=phone,
            address=address,
            items=items,
            total=compute_total(items),
            status=OrderStatus.RECEIVED,
        )
        saved = self.orders.insert(order)
        logger.info(
            "order created",
            extra={"order_id": saved.id, "sequence_number": seq, "shop_id": shop.id, "total": saved.total},
        )

        entry = self._locks.acquire(saved.id)
        try:
            self.notifier.order_created(saved, shop)
        finally:
            self._locks.release(saved.id, entry)
        return saved

    def transition_status(self, order_id: str, caller, new_status: "str | OrderStatus") -> Order:
        """Move an order to ``new_status``.

        Args:
            order_id: Target order.
            caller: Identity of the requester (``authorization.Caller``).
            new_status: Status to move to; strings are normalized.

        Returns:
            The updated Order.

        Raises:
            NotFound: If the order does not exist.
            Forbidden: If the caller may not mutate the order's shop.
            InvalidTransition: If the state machine rejects the move, or a
                concurrent transition won the race.
        """
        order = self.get_order(order_id)
        self.gate.ensure_can_mutate(caller, order.shop_id)
        target = OrderStatus.parse(new_status)

        if not can_transition(order.status, target):
            raise InvalidTransition(f"Cannot move order from {order.status.value} to {target.value}")

        entry = self._locks.acquire(order.id)
        try:
            if not self.orders.update_status(order.id, order.status, target):
                current = self.orders.get(order.id)
                logger.info(
                    "status transition lost race",
                    extra={"order_id": order.id, "expected": order.status.value, "target": target.value},
                )
                raise InvalidTransition(
                    f"Order changed concurrently to {current.status.value if current else 'unknown'}"
                )
            updated = order.with_status(target)
            logger.info(
                "order status updated",
                extra={"order_id": order.id, "from": order.status.value, "to": target.value},
            )
            self.notifier.status_changed(updated, order.status)
        finally:
            self._locks.release(order.id, entry)
        return updated

    def get_order(self, order_id: str) -> Order:
        """Return an order without any ownership check.

        Raises:
            NotFound: If no such order exists.
        """
        order = self.orders.get(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def list_shop_orders(self, shop_id: str, caller, limit: int = 200, offset: int = 0) -> List[Order]:
        """Return ``limit`` of the shop's orders, newest first, skipping ``offset``.

        Raises:
            NotFound: If the shop does not exist.
            Forbidden: If the caller is not the owner nor an admin.
        """
        self.gate.ensure_can_mutate(caller, shop_id)
        return self.orders.list_by_shop(shop_id, limit=limit, offset=offset)

    def count_shop_orders(self, shop_id: str, caller) -> int:
        self.gate.ensure_can_mutate(caller, shop_id)
        return self.orders.count_by_shop(shop_id)
