"""Fan-out of committed order changes to the real-time and WhatsApp channels.

``NotificationFanout`` implements the domain ``NotifierPort``. For every
change it publishes an event to the order's real-time topic and hands a short
text message to the messaging collaborator through an executor, so a slow or
failing messaging service never delays or fails the request that caused it.
Each channel is guarded separately and every failure is logged, never raised.
"""

import contextvars
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional, Protocol

from .domain import Order, OrderStatus, Shop
from .realtime import RealtimeHub, order_topic


logger = logging.getLogger(__name__)

EVENT_NAME = "orderStatusUpdate"


class MessagingPort(Protocol):
    """Port for the external WhatsApp messaging collaborator."""

    def send(self, phone: str, text: str, dedupe_key: Optional[str] = None) -> None:
        """Deliver ``text`` to ``phone``.

        Args:
            phone: Destination phone number in E.164 form.
            text: Message body.
            dedupe_key: Optional key the collaborator may use to drop retried
                duplicates.
        """
        raise NotImplementedError()


class InlineExecutor:
    """Executor that runs the task immediately in the calling thread.

    Used in tests and single-process tooling where deterministic delivery is
    more useful than isolation.
    """

    def submit(self, fn, *args, **kwargs) -> Future:
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as exc:
            fut.set_exception(exc)
        return fut

    def shutdown(self, wait: bool = True) -> None:
        pass


def default_executor(workers: int = 4) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")


# ---- Message templates ----
def order_received_text(order: Order) -> str:
    return (
        f"Hi {order.customer_name}, we received your order #{order.sequence_number} "
        f"({order.id}). Total: ₹{order.total}"
    )


def shop_new_order_text(order: Order) -> str:
    summary = ", ".join(f"{it.name} x{it.qty}" for it in order.items)
    return f"📥 New order #{order.sequence_number} from {order.phone} — {summary} — ₹{order.total}"


def status_updated_text(order: Order) -> str:
    label = order.status.value.replace("_", " ")
    return f"Order #{order.sequence_number} ({order.id}) status updated to {label}"


def order_event(order: Order) -> dict:
    return {
        "order_id": str(order.id),
        "status": order.status.value,
        "sequence_number": order.sequence_number,
        "shop_id": str(order.shop_id),
        "at": datetime.now(timezone.utc).isoformat(),
    }


class NotificationFanout:
    """Deliver order changes to independent downstream channels."""

    def __init__(self, hub: RealtimeHub, messenger: MessagingPort, executor=None):
        self.hub = hub
        self.messenger = messenger
        self.executor = executor or default_executor()

    def order_created(self, order: Order, shop: Optional[Shop] = None) -> None:
        self._publish(order)
        self._dispatch(order.phone, order_received_text(order), f"{order.id}:{OrderStatus.RECEIVED.value}")
        if shop is not None and shop.phone:
            self._dispatch(shop.phone, shop_new_order_text(order), f"{order.id}:shop")

    def status_changed(self, order: Order, previous: OrderStatus) -> None:
        self._publish(order)
        self._dispatch(order.phone, status_updated_text(order), f"{order.id}:{order.status.value}")

    def _publish(self, order: Order) -> None:
        topic = order_topic(order.id)
        try:
            delivered = self.hub.publish(topic, order_event(order))
            logger.info(
                "real-time update published",
                extra={"topic": topic, "status": order.status.value, "subscribers": delivered},
            )
        except Exception:
            logger.exception("real-time publish failed", extra={"topic": topic})

    def _dispatch(self, phone: str, text: str, dedupe_key: str) -> None:
        if not phone:
            return
        try:
            # copy_context carries the request id into the pool thread
            ctx = contextvars.copy_context()
            fut = self.executor.submit(ctx.run, self.messenger.send, phone, text, dedupe_key)
        except Exception:
            logger.exception("could not queue outbound message", extra={"dedupe_key": dedupe_key})
            return
        fut.add_done_callback(lambda f: self._log_outcome(f, dedupe_key))

    @staticmethod
    def _log_outcome(fut: Future, dedupe_key: str) -> None:
        if fut.cancelled():
            logger.warning("outbound message cancelled", extra={"dedupe_key": dedupe_key})
            return
        exc = fut.exception()
        if exc is not None:
            logger.error(
                "outbound message failed",
                extra={"dedupe_key": dedupe_key, "error": repr(exc)},
            )
        else:
            logger.debug("outbound message handed off", extra={"dedupe_key": dedupe_key})
