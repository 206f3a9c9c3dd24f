"""Command handling for the WhatsApp bot channel.

Incoming messages are split on whitespace; the first word selects the
command:

- ``menu <shopPhone>`` lists the shop's available items with their codes.
- ``order <shopPhone> <itemCode> <qty>`` places an order through the order
  lifecycle, so prices, numbering and notifications behave exactly like an
  API order.
- ``status <orderId>`` looks up an order's status. This read path needs no
  shop ownership, only a valid order reference.

Anything else gets the help text.
"""

import logging
from typing import Optional

from apps.orders.domain import OrderError, OrderLifecycle, RequestedItem
from apps.orders.repository import MenuRepository, ShopRepository


logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Welcome. Commands:\n"
    "1) menu <shopPhone>\n"
    "2) order <shopPhone> <itemId> <qty>\n"
    "3) status <orderId>"
)


def strip_channel_prefix(sender: str) -> str:
    sender = (sender or "").strip()
    if sender.lower().startswith("whatsapp:"):
        return sender[len("whatsapp:"):]
    return sender


class BotCommands:
    """Turns one inbound WhatsApp message into one reply text."""

    def __init__(
        self,
        lifecycle: OrderLifecycle,
        shops: Optional[ShopRepository] = None,
        menus: Optional[MenuRepository] = None,
    ):
        self.lifecycle = lifecycle
        self.shops = shops or ShopRepository()
        self.menus = menus or MenuRepository()

    def handle(self, sender: str, body: str) -> str:
        parts = (body or "").split()
        cmd = parts[0].lower() if parts else ""

        if cmd == "menu" and len(parts) >= 2:
            return self.menu(parts[1])
        if cmd == "order" and len(parts) >= 4:
            return self.order(sender, parts[1], parts[2], parts[3])
        if cmd == "status" and len(parts) >= 2:
            return self.status(parts[1])
        return HELP_TEXT

    def menu(self, shop_phone: str) -> str:
        shop = self.shops.get_by_phone(shop_phone)
        if shop is None:
            return f"Shop {shop_phone} not found."
        items = self.menus.list_available(shop.id)
        if not items:
            return f"No items found for {shop.name}."
        lines = [f"Menu for {shop.name}:"]
        lines += [f"{it.code or it.item_id}. {it.name} — ₹{it.price}" for it in items]
        example = items[0].code or items[0].item_id
        lines.append("")
        lines.append(f"To order: order {shop.phone} <itemId> <qty>")
        lines.append(f"Example: order {shop.phone} {example} 2")
        return "\n".join(lines)

    def order(self, sender: str, shop_phone: str, item_code: str, raw_qty: str) -> str:
        try:
            qty = max(1, int(raw_qty))
        except ValueError:
            qty = 1

        shop = self.shops.get_by_phone(shop_phone)
        if shop is None:
            return f"Shop {shop_phone} not found."
        item = self.menus.find_by_code(shop.id, item_code)
        if item is None:
            return f"Item {item_code} not found."

        phone = strip_channel_prefix(sender)
        try:
            order = self.lifecycle.create_order(
                shop_id=shop.id,
                customer_name=f"WhatsApp:{phone}",
                phone=phone,
                address=None,
                requested_items=[RequestedItem(name=item.name, qty=qty, item_id=item.item_id)],
            )
        except OrderError as e:
            logger.warning("bot order rejected", extra={"code": e.code, "shop_id": shop.id})
            return f"Sorry, we could not place your order ({e.message})."
        return (
            f"✅ Order placed: #{order.sequence_number} ({order.id})\n"
            f"Total: ₹{order.total}\n"
            "You will receive updates here."
        )

    def status(self, order_ref: str) -> str:
        try:
            order = self.lifecycle.get_order(order_ref)
        except OrderError:
            return f"Order {order_ref} not found."
        return f"Order #{order.sequence_number} ({order.id}) status: {order.status.value}"
