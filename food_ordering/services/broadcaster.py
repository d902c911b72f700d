"""
Realtime Order Broadcaster

In-process publish/subscribe fan-out of order lifecycle events to every
connected admin dashboard and customer session.

Delivery contract:
    - An event reaches every subscriber registered on its topic at the
      moment of publish. There is no persistence or replay; late
      subscribers reconcile with a full fetch of ``GET /api/orders``.
    - Each subscriber receives events in publish order.
    - ``publish`` never blocks and never raises because of a subscriber.
      A subscriber whose bounded queue is full is logged and dropped; its
      stream ends and the client is expected to reconnect.

``publish`` must be called from the event loop that owns the subscribers'
queues. The registry itself is guarded by a lock so subscribe/unsubscribe
are safe from any thread.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Optional

from food_ordering.core.config import get_settings

logger = logging.getLogger(__name__)

ORDERS_TOPIC = "orders.updates"


class EventKind(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status_changed"


@dataclass(frozen=True)
class OrderEvent:
    kind: EventKind
    topic: str
    sequence: int
    order: dict[str, Any]
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def order_id(self) -> Optional[int]:
        return self.order.get("id")

    def to_message(self) -> dict[str, Any]:
        """Wire representation sent to WebSocket clients."""
        return {
            "event": self.kind.value,
            "topic": self.topic,
            "sequence": self.sequence,
            "published_at": self.published_at.isoformat(),
            "order": self.order,
        }


EventFilter = Callable[[OrderEvent], bool]


class SubscriptionClosed(Exception):
    """Raised by ``Subscription.get`` once the stream has ended."""


_CLOSED = object()


class Subscription:
    """
    One subscriber's bounded event queue.

    Iterate with ``async for``; iteration stops when the subscription is
    closed, either by the subscriber or by the broadcaster dropping it.
    """

    def __init__(
        self,
        broadcaster: "OrderBroadcaster",
        topic: str,
        maxsize: int,
        event_filter: Optional[EventFilter] = None,
    ):
        self.topic = topic
        self._broadcaster = broadcaster
        self._filter = event_filter
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _offer(self, event: OrderEvent) -> bool:
        """Queue an event; False means the subscriber cannot keep up."""
        if self._closed:
            return True
        if self._filter is not None and not self._filter(event):
            return True
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def _terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> OrderEvent:
        if self._closed and self._queue.empty():
            raise SubscriptionClosed(self.topic)
        item = await self._queue.get()
        if item is _CLOSED:
            raise SubscriptionClosed(self.topic)
        return item

    def close(self) -> None:
        """Unsubscribe and end the stream."""
        self._broadcaster.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> OrderEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration


class OrderBroadcaster:
    """Topic-based fan-out of order events."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: dict[str, set[Subscription]] = {}
        self._sequence = 0

    def subscribe(
        self,
        topic: str = ORDERS_TOPIC,
        event_filter: Optional[EventFilter] = None,
    ) -> Subscription:
        subscription = Subscription(self, topic, self.queue_size, event_filter)
        with self._lock:
            self._topics.setdefault(topic, set()).add(subscription)
        logger.debug(f"Subscriber added to {topic}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._topics.get(subscription.topic)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._topics[subscription.topic]
        subscription._terminate()

    def subscriber_count(self, topic: str = ORDERS_TOPIC) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    def publish(
        self,
        kind: EventKind,
        order: dict[str, Any],
        topic: str = ORDERS_TOPIC,
    ) -> OrderEvent:
        """
        Hand an event to every current subscriber of ``topic``.

        Returns:
            The published event (with its sequence number)
        """
        with self._lock:
            self._sequence += 1
            event = OrderEvent(kind=kind, topic=topic, sequence=self._sequence, order=order)
            subscribers = list(self._topics.get(topic, ()))

        failed: list[Subscription] = []
        for subscription in subscribers:
            try:
                delivered = subscription._offer(event)
            except Exception:
                logger.exception(f"Subscriber on {topic} failed to accept event #{event.sequence}")
                delivered = False
            if not delivered:
                failed.append(subscription)

        for subscription in failed:
            logger.warning(
                f"Dropping slow subscriber on {topic} "
                f"({subscription.pending} events pending) at event #{event.sequence}"
            )
            subscription.dropped = True
            self.unsubscribe(subscription)

        logger.debug(
            f"Published {kind.value} for order #{event.order_id} "
            f"to {len(subscribers) - len(failed)} subscriber(s)"
        )
        return event

    def close_all(self) -> None:
        with self._lock:
            subscriptions = [s for subs in self._topics.values() for s in subs]
            self._topics.clear()
        for subscription in subscriptions:
            subscription._terminate()


@lru_cache()
def get_broadcaster() -> OrderBroadcaster:
    """Get the process-wide broadcaster."""
    return OrderBroadcaster(queue_size=get_settings().broadcaster_queue_size)


def reset_broadcaster() -> None:
    """Close all subscriptions and clear the cached broadcaster."""
    if get_broadcaster.cache_info().currsize:
        get_broadcaster().close_all()
    get_broadcaster.cache_clear()
