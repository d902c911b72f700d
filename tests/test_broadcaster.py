import asyncio

import pytest

from food_ordering.services.broadcaster import (
    ORDERS_TOPIC,
    EventKind,
    OrderBroadcaster,
    SubscriptionClosed,
)


def order(order_id, phone="+998900000001", status="NEW"):
    return {"id": order_id, "status": status, "customer_phone": phone}


async def test_subscriber_receives_events_published_after_subscribing():
    broadcaster = OrderBroadcaster(queue_size=8)
    early = broadcaster.subscribe()
    broadcaster.publish(EventKind.ORDER_CREATED, order(1))
    late = broadcaster.subscribe()

    event = await asyncio.wait_for(early.get(), timeout=1)
    assert event.kind == EventKind.ORDER_CREATED
    assert event.order_id == 1
    assert late.pending == 0


async def test_events_arrive_in_publish_order():
    broadcaster = OrderBroadcaster(queue_size=16)
    subscription = broadcaster.subscribe()
    for order_id in range(1, 6):
        broadcaster.publish(EventKind.ORDER_STATUS_CHANGED, order(order_id))

    received = [(await subscription.get()).order_id for _ in range(5)]
    assert received == [1, 2, 3, 4, 5]


async def test_slow_subscriber_is_dropped_without_affecting_others():
    broadcaster = OrderBroadcaster(queue_size=2)
    slow = broadcaster.subscribe()
    fast = broadcaster.subscribe()

    broadcaster.publish(EventKind.ORDER_CREATED, order(1))
    assert (await fast.get()).order_id == 1
    broadcaster.publish(EventKind.ORDER_CREATED, order(2))
    assert (await fast.get()).order_id == 2
    broadcaster.publish(EventKind.ORDER_CREATED, order(3))

    assert slow.dropped
    assert slow.closed
    assert broadcaster.subscriber_count() == 1
    with pytest.raises(SubscriptionClosed):
        await slow.get()
    assert (await fast.get()).order_id == 3


async def test_publish_survives_a_failing_subscriber():
    broadcaster = OrderBroadcaster()

    def broken_filter(event):
        raise RuntimeError("boom")

    broken = broadcaster.subscribe(event_filter=broken_filter)
    healthy = broadcaster.subscribe()

    event = broadcaster.publish(EventKind.ORDER_CREATED, order(7))
    assert event.sequence == 1
    assert broken.dropped
    assert (await healthy.get()).order_id == 7


async def test_filter_limits_events_to_one_customer():
    broadcaster = OrderBroadcaster()
    mine = broadcaster.subscribe(event_filter=lambda e: e.order.get("customer_phone") == "+1")
    broadcaster.publish(EventKind.ORDER_CREATED, order(1, phone="+2"))
    broadcaster.publish(EventKind.ORDER_CREATED, order(2, phone="+1"))

    assert mine.pending == 1
    assert (await mine.get()).order_id == 2


async def test_async_iteration_stops_on_close():
    broadcaster = OrderBroadcaster()
    subscription = broadcaster.subscribe()
    broadcaster.publish(EventKind.ORDER_CREATED, order(1))
    broadcaster.publish(EventKind.ORDER_CREATED, order(2))

    seen = []
    async for event in subscription:
        seen.append(event.order_id)
        if len(seen) == 2:
            subscription.close()
    assert seen == [1, 2]
    assert broadcaster.subscriber_count() == 0


def test_topics_are_isolated():
    broadcaster = OrderBroadcaster()
    other = broadcaster.subscribe("kitchen.tickets")
    broadcaster.publish(EventKind.ORDER_CREATED, order(1), topic=ORDERS_TOPIC)
    assert other.pending == 0


def test_message_shape():
    broadcaster = OrderBroadcaster()
    message = broadcaster.publish(EventKind.ORDER_STATUS_CHANGED, order(3, status="COOKING")).to_message()
    assert message["event"] == "order.status_changed"
    assert message["topic"] == ORDERS_TOPIC
    assert message["order"]["status"] == "COOKING"
    assert message["sequence"] == 1


def test_close_all_ends_every_stream():
    broadcaster = OrderBroadcaster()
    a, b = broadcaster.subscribe(), broadcaster.subscribe("other")
    broadcaster.close_all()
    assert a.closed and b.closed
    assert broadcaster.subscriber_count() == 0
