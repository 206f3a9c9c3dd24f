"""Repository layer for orders, shops, menus and sequence counters.

The classes here implement the domain ports on top of the Django ORM. They
map rows to the domain dataclasses so the domain layer is not coupled to ORM
types, and they translate database failures into ``StorageUnavailable``.
"""

import uuid
from typing import List, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import F, Q

from .domain import (
    LineItem,
    MenuEntry,
    Order,
    OrderStatus,
    Shop,
    StorageUnavailable,
)
from .models import CounterModel, MenuItemModel, OrderModel, ShopModel


def _as_uuid(value) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def to_domain(obj: OrderModel) -> Order:
    items = tuple(
        LineItem(
            name=i.get("name", ""),
            qty=int(i.get("qty", 1)),
            unit_price=int(i.get("unit_price", 0)),
            item_id=i.get("item_id"),
        )
        for i in (obj.items or [])
    )
    return Order(
        id=str(obj.id),
        sequence_number=obj.sequence_number,
        shop_id=str(obj.shop_id),
        customer_name=obj.customer_name,
        phone=obj.phone,
        address=obj.address,
        items=items,
        total=obj.total,
        status=OrderStatus(obj.status),
        created_at=obj.created_at,
    )


class SequenceAllocator:
    """Named counters stored in the ``counters`` table.

    ``allocate`` is a single atomic find-and-increment: the row is created if
    missing (ignoring a concurrent creator), incremented in place with
    ``seq = seq + 1`` and read back while the row lock is still held, so two
    callers can never observe the same value.
    """

    def allocate(self, sequence_name: str) -> int:
        try:
            with transaction.atomic():
                CounterModel.objects.bulk_create(
                    [CounterModel(name=sequence_name, seq=0)], ignore_conflicts=True
                )
                CounterModel.objects.filter(name=sequence_name).update(seq=F("seq") + 1)
                return CounterModel.objects.values_list("seq", flat=True).get(name=sequence_name)
        except DatabaseError as e:
            raise StorageUnavailable(f"Could not allocate from sequence '{sequence_name}'") from e

    def current(self, sequence_name: str) -> int:
        row = CounterModel.objects.filter(name=sequence_name).values_list("seq", flat=True).first()
        return row or 0


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM."""

    def insert(self, order: Order) -> Order:
        """Persist a new order record.

        Args:
            order: Domain ``Order`` with its sequence number already assigned.

        Returns:
            The stored order, carrying the generated UUID and creation time.

        Raises:
            StorageUnavailable: If the insert fails.
        """
        try:
            obj = OrderModel.objects.create(
                sequence_number=order.sequence_number,
                shop_id=order.shop_id,
                customer_name=order.customer_name,
                phone=order.phone,
                address=order.address,
                items=[
                    {"item_id": it.item_id, "name": it.name, "qty": it.qty, "unit_price": it.unit_price}
                    for it in order.items
                ],
                total=order.total,
                status=order.status.value,
            )
        except DatabaseError as e:
            raise StorageUnavailable("Could not persist order") from e
        return to_domain(obj)

    def get(self, order_id: str) -> Optional[Order]:
        oid = _as_uuid(order_id)
        if oid is None:
            return None
        try:
            obj = OrderModel.objects.filter(id=oid).first()
        except (DatabaseError, ValidationError) as e:
            raise StorageUnavailable("Could not load order") from e
        return to_domain(obj) if obj else None

    def update_status(self, order_id: str, expected: OrderStatus, new: OrderStatus) -> bool:
        """Conditionally update the status.

        The ``WHERE status = expected`` clause makes the update a
        compare-and-set, so of two racing writers only one matches a row.
        """
        try:
            updated = OrderModel.objects.filter(id=_as_uuid(order_id), status=expected.value).update(
                status=new.value
            )
        except DatabaseError as e:
            raise StorageUnavailable("Could not update order status") from e
        return updated == 1

    def list_by_shop(self, shop_id: str, limit: int = 200, offset: int = 0) -> List[Order]:
        sid = _as_uuid(shop_id)
        if sid is None or limit <= 0:
            return []
        qs = OrderModel.objects.filter(shop_id=sid).order_by("-created_at", "-sequence_number")
        return [to_domain(o) for o in qs[offset:offset + limit]]

    def count_by_shop(self, shop_id: str) -> int:
        sid = _as_uuid(shop_id)
        if sid is None:
            return 0
        return OrderModel.objects.filter(shop_id=sid).count()


class ShopRepository:
    def get(self, shop_id: str) -> Optional[Shop]:
        sid = _as_uuid(shop_id)
        if sid is None:
            return None
        obj = ShopModel.objects.filter(id=sid).first()
        return self._to_domain(obj) if obj else None

    def get_by_phone(self, phone: str) -> Optional[Shop]:
        obj = ShopModel.objects.filter(phone=phone).first()
        return self._to_domain(obj) if obj else None

    @staticmethod
    def _to_domain(obj: ShopModel) -> Shop:
        return Shop(id=str(obj.id), name=obj.name, phone=obj.phone, owner_id=obj.owner_id)


class MenuRepository:
    """Read-only access to menu items; this layer never mutates menus."""

    def list_entries(self, shop_id: str) -> List[MenuEntry]:
        sid = _as_uuid(shop_id)
        if sid is None:
            return []
        return [self._to_entry(m) for m in MenuItemModel.objects.filter(shop_id=sid)]

    def list_available(self, shop_id: str) -> List[MenuEntry]:
        return [m for m in self.list_entries(shop_id) if m.available]

    def find_by_code(self, shop_id: str, code: str) -> Optional[MenuEntry]:
        """Look an item up by its short code, or by its id when it has none.

        The bot menu lists code-less items under their id, so both forms must
        resolve.
        """
        match = Q(external_id=code)
        item_uuid = _as_uuid(code)
        if item_uuid is not None:
            match |= Q(id=item_uuid)
        obj = MenuItemModel.objects.filter(match, shop_id=_as_uuid(shop_id)).first()
        return self._to_entry(obj) if obj else None

    @staticmethod
    def _to_entry(obj: MenuItemModel) -> MenuEntry:
        return MenuEntry(
            item_id=str(obj.id),
            name=obj.name,
            price=obj.price,
            available=obj.available,
            code=obj.external_id or None,
        )
