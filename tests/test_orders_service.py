import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from food_ordering.core.config import UnknownProductPolicy
from food_ordering.core.exceptions import (
    OrderValidationError,
    ProductNotFoundError,
    StoreClosedError,
)
from food_ordering.models import Order, OrderStatus, OrderType, Product
from food_ordering.schemas import OrderCreate
from food_ordering.services.broadcaster import EventKind, get_broadcaster
from food_ordering.services.orders import OrderService
from food_ordering.services.settings_store import SettingsStore

from tests.conftest import PLOV, SAMSA

# 21:00 in Asia/Tashkent
DURING_BREAK = datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)
# 12:00 in Asia/Tashkent
MIDDAY = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)


def delivery_request(phone="+998901112233", **overrides):
    data = {
        "order_type": "DELIVERY",
        "items": [
            {"product_id": PLOV, "quantity": 2},
            {"product_id": SAMSA, "quantity": 1},
        ],
        "customer_name": "Aziz",
        "customer_phone": phone,
        "address": "Amir Temur 15",
    }
    data.update(overrides)
    return OrderCreate(**data)


async def count_orders(db) -> int:
    return (await db.execute(select(func.count(Order.id)))).scalar()


async def test_create_order_snapshots_prices_and_fee(db):
    await SettingsStore(db).set_setting("delivery_price", "15000")
    subscription = get_broadcaster().subscribe()

    order = await OrderService(db).create_order(delivery_request())

    assert order.status == OrderStatus.NEW
    assert order.total_amount == Decimal("115000.00")
    assert order.delivery_price == Decimal("15000.00")
    assert [(i.product_id, i.quantity, i.price) for i in order.items] == [
        (PLOV, 2, Decimal("45000.00")),
        (SAMSA, 1, Decimal("10000.00")),
    ]

    event = await subscription.get()
    assert event.kind == EventKind.ORDER_CREATED
    assert event.order["total_amount"] == 115000.0


async def test_total_is_not_recomputed_after_price_change(db):
    service = OrderService(db)
    order = await service.create_order(delivery_request())

    product = await db.get(Product, PLOV)
    product.price = Decimal("99000")
    await db.commit()

    reloaded = await service.get_order(order.id)
    assert reloaded.total_amount == order.total_amount
    assert reloaded.items[0].price == Decimal("45000.00")


async def test_pickup_order_has_no_delivery_fee(db):
    await SettingsStore(db).set_setting("delivery_price", "15000")
    order = await OrderService(db).create_order(
        delivery_request(order_type="PICKUP", address=None)
    )
    assert order.order_type == OrderType.PICKUP
    assert order.total_amount == Decimal("100000.00")


async def test_malformed_delivery_price_falls_back_to_default(db):
    await SettingsStore(db).set_setting("delivery_price", "cheap")
    order = await OrderService(db).create_order(delivery_request())
    assert order.delivery_price == Decimal("0.00")


async def test_closed_store_rejects_before_any_write(db):
    store = SettingsStore(db)
    await store.set_setting("store_mode", "AUTO")
    subscription = get_broadcaster().subscribe()

    with pytest.raises(StoreClosedError) as exc_info:
        await OrderService(db).create_order(delivery_request(), now=DURING_BREAK)

    assert exc_info.value.next_change_time == "22:00"
    assert await count_orders(db) == 0
    assert subscription.pending == 0


async def test_auto_mode_admits_during_working_hours(db):
    await SettingsStore(db).set_setting("store_mode", "AUTO")
    order = await OrderService(db).create_order(delivery_request(), now=MIDDAY)
    assert order.id is not None


async def test_manual_close_overrides_schedule(db):
    await SettingsStore(db).set_setting("store_mode", "CLOSED")
    with pytest.raises(StoreClosedError):
        await OrderService(db).create_order(delivery_request(), now=MIDDAY)


async def test_corrupted_mode_fails_closed(db):
    await SettingsStore(db).set_setting("store_mode", "SOMETIMES")
    verdict = await OrderService(db).get_availability(now=MIDDAY)
    assert not verdict.is_open


async def test_unknown_products_are_skipped(db):
    request = delivery_request(items=[
        {"product_id": "ghost", "quantity": 1},
        {"product_id": SAMSA, "quantity": 3},
    ])
    order = await OrderService(db).create_order(request)
    assert [i.product_id for i in order.items] == [SAMSA]
    assert order.total_amount == Decimal("30000.00")


async def test_unknown_products_rejected_under_reject_policy(db, settings):
    strict = settings.model_copy(update={"unknown_product_policy": UnknownProductPolicy.REJECT})
    request = delivery_request(items=[{"product_id": "ghost", "quantity": 1}])
    with pytest.raises(ProductNotFoundError):
        await OrderService(db, app_settings=strict).create_order(request)
    assert await count_orders(db) == 0


async def test_unavailable_product_is_not_priced(db):
    product = await db.get(Product, SAMSA)
    product.is_available = False
    await db.commit()

    with pytest.raises(OrderValidationError):
        await OrderService(db).create_order(
            delivery_request(items=[{"product_id": SAMSA, "quantity": 1}])
        )


async def test_delivery_requires_destination(db):
    with pytest.raises(OrderValidationError):
        await OrderService(db).create_order(delivery_request(address=None))

    order = await OrderService(db).create_order(
        delivery_request(address=None, location_lat=41.31, location_lon=69.24)
    )
    assert order.location_lat == pytest.approx(41.31)


async def test_list_orders_newest_first_with_phone_filter(db):
    base = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)
    ticks = iter(base + timedelta(minutes=i) for i in range(10))
    service = OrderService(db, clock=lambda: next(ticks))

    first = await service.create_order(delivery_request(phone="+998900000001"))
    await service.create_order(delivery_request(phone="+998900000002"))
    third = await service.create_order(delivery_request(phone="+998900000001"))

    total, orders = await service.list_orders(phone="+998900000001")
    assert total == 2
    assert [o.id for o in orders] == [third.id, first.id]

    total, orders = await service.list_orders()
    assert total == 3
    assert orders[0].id == third.id

    _, page = await service.list_orders(skip=1, limit=1)
    assert len(page) == 1


async def test_change_status_through_service(db):
    service = OrderService(db)
    order = await service.create_order(delivery_request())
    updated = await service.change_status(order.id, OrderStatus.COOKING)
    assert updated.status == OrderStatus.COOKING

    total, cooking = await service.list_orders(status=OrderStatus.COOKING)
    assert total == 1 and cooking[0].id == order.id


async def test_new_order_notification_is_dispatched(db, settings, monkeypatch):
    sent = []
    monkeypatch.setattr(
        "food_ordering.services.orders.dispatch_new_order_notification",
        lambda payload: sent.append(payload) or True,
    )
    enabled = settings.model_copy(update={"notify_admins_on_new_order": True})

    order = await OrderService(db, app_settings=enabled).create_order(delivery_request())
    assert [p["id"] for p in sent] == [order.id]


async def test_eager_mode_notifies_admins_from_a_running_loop(db, settings, monkeypatch):
    from food_ordering import tasks
    from food_ordering.celery_worker import celery_app
    from food_ordering.services.notifications import MockNotificationService

    service = MockNotificationService(failure_rate=0, min_latency=0, max_latency=0)
    monkeypatch.setattr(tasks, "get_notification_service", lambda: service)
    monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
    enabled = settings.model_copy(update={"notify_admins_on_new_order": True})

    order = await OrderService(db, app_settings=enabled).create_order(delivery_request())
    await asyncio.gather(*list(tasks._inline_notifications))

    assert [m["order_id"] for m in service.sent] == [order.id]


async def test_empty_store_mode_is_not_mistaken_for_auto(db):
    await SettingsStore(db).set_setting("store_mode", "")
    verdict = await OrderService(db).get_availability(now=MIDDAY)
    assert not verdict.is_open
    assert verdict.mode == ""
