"""Tests for the notification fan-out.

The fan-out must publish to the real-time hub and message the customer for
every committed change, while keeping the two channels independent: a
failure in one never stops the other and never reaches the caller.
"""
from concurrent.futures import Future

from apps.orders.adapters import RecordingMessenger
from apps.orders.domain import LineItem, Order, OrderStatus, Shop
from apps.orders.notifications import (
    InlineExecutor,
    NotificationFanout,
    order_event,
    shop_new_order_text,
    status_updated_text,
)
from apps.orders.realtime import RealtimeHub, order_topic


def _order(status=OrderStatus.RECEIVED):
    return Order(
        id="o-1",
        sequence_number=7,
        shop_id="s-1",
        customer_name="Asha",
        phone="+919811111111",
        items=(LineItem("Pizza", 2, 150),),
        total=300,
        status=status,
    )


def _fanout(messenger=None, hub=None, executor=None):
    return NotificationFanout(hub or RealtimeHub(), messenger or RecordingMessenger(), executor or InlineExecutor())


def test_order_created_messages_customer_and_shop():
    rec = RecordingMessenger()
    _fanout(rec).order_created(_order(), Shop(id="s-1", name="P", phone="+919800000001"))

    assert [(m["to"], m["dedupe_key"]) for m in rec.sent] == [
        ("+919811111111", "o-1:received"),
        ("+919800000001", "o-1:shop"),
    ]
    assert "#7" in rec.sent[0]["body"]
    assert "Pizza x2" in rec.sent[1]["body"]


def test_order_created_without_shop_phone_messages_customer_only():
    rec = RecordingMessenger()
    _fanout(rec).order_created(_order(), Shop(id="s-1", name="P"))
    assert [m["to"] for m in rec.sent] == ["+919811111111"]


def test_status_changed_publishes_and_messages_once():
    hub = RealtimeHub()
    rec = RecordingMessenger()
    sub = hub.subscribe(order_topic("o-1"))

    _fanout(rec, hub).status_changed(_order(OrderStatus.OUT_FOR_DELIVERY), OrderStatus.PACKED)

    events = sub.drain()
    assert len(events) == 1
    assert events[0]["status"] == "out_for_delivery"
    assert events[0]["sequence_number"] == 7
    assert len(rec.sent) == 1
    assert rec.sent[0]["body"] == "Order #7 (o-1) status updated to out for delivery"
    assert rec.sent[0]["dedupe_key"] == "o-1:out_for_delivery"


def test_messenger_failure_is_logged_not_raised(app_logs):
    rec = RecordingMessenger()
    rec.should_fail = True
    _fanout(rec).status_changed(_order(OrderStatus.ACCEPTED), OrderStatus.RECEIVED)
    assert len(rec.sent) == 1
    assert "outbound message failed" in app_logs.text


def test_hub_failure_does_not_block_message(app_logs):
    class BrokenHub:
        def publish(self, topic, event):
            raise RuntimeError("hub down")

    rec = RecordingMessenger()
    NotificationFanout(BrokenHub(), rec, InlineExecutor()).status_changed(
        _order(OrderStatus.ACCEPTED), OrderStatus.RECEIVED
    )
    assert len(rec.sent) == 1
    assert "real-time publish failed" in app_logs.text


def test_executor_that_rejects_work_is_tolerated():
    class ClosedExecutor:
        def submit(self, fn, *args, **kwargs):
            raise RuntimeError("cannot schedule new futures after shutdown")

    _fanout(executor=ClosedExecutor()).status_changed(_order(OrderStatus.ACCEPTED), OrderStatus.RECEIVED)


def test_cancelled_future_is_logged(app_logs):
    class CancellingExecutor:
        def submit(self, fn, *args, **kwargs):
            fut = Future()
            fut.cancel()
            return fut

    _fanout(executor=CancellingExecutor()).status_changed(_order(OrderStatus.ACCEPTED), OrderStatus.RECEIVED)
    assert "outbound message cancelled" in app_logs.text


def test_templates():
    order = _order(OrderStatus.PACKED)
    assert status_updated_text(order).endswith("status updated to packed")
    assert shop_new_order_text(order).startswith("📥 New order #7")
    assert order_event(order)["order_id"] == "o-1"


def test_pool_thread_sends_with_request_id(monkeypatch):
    import httpx

    from apps.orders.http_adapters import HttpMessagingClient, _messaging_cb
    from apps.orders.notifications import default_executor
    from gateway.middleware import REQUEST_ID_CTX

    seen = []

    def fake_post(self, url, json=None, headers=None, **kw):
        seen.append(headers.get("X-Request-ID"))
        return httpx.Response(202, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    _messaging_cb.on_success()
    pool = default_executor(1)
    token = REQUEST_ID_CTX.set("rid-123")
    try:
        fanout = NotificationFanout(RealtimeHub(), HttpMessagingClient(base_url="http://x"), pool)
        fanout.status_changed(_order(OrderStatus.ACCEPTED), OrderStatus.RECEIVED)
    finally:
        REQUEST_ID_CTX.reset(token)
        pool.shutdown(wait=True)

    assert seen == ["rid-123"]
