"""In-process topic hub for real-time order updates.

Subscribers (for example a dashboard holding an event stream open) join a
topic named after an order and receive every event published to it while they
are connected. Delivery is at-most-once: there is no acknowledgment, no
persistence and no replay for late joiners, who must fetch the current order
state themselves.
"""

import itertools
import logging
import queue
import threading
from typing import Dict, Optional


logger = logging.getLogger(__name__)

_ids = itertools.count(1)


def order_topic(order_id) -> str:
    return f"order:{order_id}"


class Subscription:
    """A single client's membership in a topic.

    Events are buffered in a bounded queue; ``get`` blocks up to ``timeout``
    seconds and returns None when nothing arrived.
    """

    def __init__(self, topic: str, maxsize: int, client_id: Optional[str] = None):
        self.id = next(_ids)
        self.topic = topic
        self.client_id = client_id or f"sub-{self.id}"
        self._queue: "queue.Queue[dict]" = queue.Queue(maxsize=maxsize)

    def offer(self, event: dict) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            return False

    def get(self, timeout: Optional[float] = None) -> Optional[dict]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list:
        """Return every buffered event without blocking."""
        out = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out


class RealtimeHub:
    """Thread-safe topic-scoped publish/subscribe.

    Publishing snapshots the subscriber set under the lock and then offers
    the event to each subscriber without blocking, so a slow subscriber only
    loses its own events.
    """

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: Dict[str, Dict[int, Subscription]] = {}

    def subscribe(self, topic: str, client_id: Optional[str] = None) -> Subscription:
        sub = Subscription(topic, self.queue_size, client_id)
        with self._lock:
            self._topics.setdefault(topic, {})[sub.id] = sub
        logger.debug("client joined topic", extra={"topic": topic, "client_id": sub.client_id})
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            members = self._topics.get(subscription.topic)
            if not members:
                return
            members.pop(subscription.id, None)
            if not members:
                del self._topics[subscription.topic]
        logger.debug(
            "client left topic",
            extra={"topic": subscription.topic, "client_id": subscription.client_id},
        )

    def topic_count(self) -> int:
        with self._lock:
            return len(self._topics)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, {}))

    def publish(self, topic: str, event: dict) -> int:
        """Offer ``event`` to every current subscriber of ``topic``.

        Returns:
            int: Number of subscribers that accepted the event.
        """
        with self._lock:
            members = list(self._topics.get(topic, {}).values())
        delivered = 0
        for sub in members:
            if sub.offer(event):
                delivered += 1
            else:
                logger.warning(
                    "subscriber queue full, dropping event",
                    extra={"topic": topic, "client_id": sub.client_id},
                )
        return delivered
