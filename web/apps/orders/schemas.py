"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API
and the read projection returned by every order endpoint.
"""

import re
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain import Order, OrderStatus, RequestedItem


PHONE_RE = re.compile(r"^\+?[0-9]{6,15}$")


class OrderItemIn(BaseModel):
    """Input schema for a single requested line item.

    Attributes:
        id: Optional menu item identifier (UUID or short bot code).
        name: Optional item name, used when the id does not match.
        qty: Positive integer quantity.
        price: Client-supplied unit price, trusted only when the item cannot
            be found on the shop's menu.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    name: Optional[str] = Field(default=None, max_length=200)
    qty: int = Field(default=1, gt=0, le=1000)
    price: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def require_reference(self):
        if not self.id and not self.name:
            raise ValueError("Each item needs an id or a name")
        return self

    def to_domain(self) -> RequestedItem:
        return RequestedItem(name=self.name, qty=self.qty, item_id=self.id, price=self.price)


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    An empty ``items`` list is accepted here on purpose: the domain rejects
    it with ``EMPTY_ORDER`` before allocating a sequence number.
    """

    shop: UUID
    customer_name: str = Field(min_length=1, max_length=200)
    phone: str
    address: Optional[Any] = None
    items: list[OrderItemIn] = Field(default_factory=list)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        """Normalize the phone number, dropping spaces, dashes and a whatsapp: prefix.

        Raises:
            ValueError: When the result is not a plausible E.164 number.
        """
        v2 = re.sub(r"[\s\-()]", "", v.strip())
        if v2.lower().startswith("whatsapp:"):
            v2 = v2[len("whatsapp:"):]
        if not PHONE_RE.match(v2):
            raise ValueError("Invalid phone number")
        return v2


class StatusUpdateDTO(BaseModel):
    """Requested status; the name itself is checked by the domain after authorization."""

    status: str = Field(min_length=1, max_length=32)


class ShopOrdersQuery(BaseModel):
    """Query string of the shop order listing."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class LineItemOut(BaseModel):
    item_id: Optional[str] = None
    name: str
    qty: int
    unit_price: int
    line_total: int


class OrderReadDTO(BaseModel):
    """Read projection of an order."""

    id: UUID
    sequence_number: int
    shop_id: UUID
    customer_name: str
    phone: str
    address: Optional[Any] = None
    items: list[LineItemOut]
    total: int
    status: OrderStatus
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            sequence_number=order.sequence_number,
            shop_id=order.shop_id,
            customer_name=order.customer_name,
            phone=order.phone,
            address=order.address,
            items=[
                LineItemOut(
                    item_id=it.item_id,
                    name=it.name,
                    qty=it.qty,
                    unit_price=it.unit_price,
                    line_total=it.line_total,
                )
                for it in order.items
            ],
            total=order.total,
            status=order.status,
            created_at=order.created_at,
        )
