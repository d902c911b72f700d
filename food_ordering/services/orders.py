"""
Order Service

Facade over the ordering core used by the HTTP layer:

    create_order     admission gate -> pricing -> insert -> ORDER_CREATED
    list_orders      newest first, optionally filtered by customer phone
    get_order
    change_status    state machine (CAS write) -> ORDER_STATUS_CHANGED
    get_availability schedule resolver over the current store settings
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import Settings, get_settings
from food_ordering.core.exceptions import OrderNotFoundError, OrderValidationError
from food_ordering.models import Order, OrderItem, OrderStatus, OrderType
from food_ordering.schemas import OrderCreate, order_payload
from food_ordering.services.admission import AdmissionGate
from food_ordering.services.broadcaster import EventKind, OrderBroadcaster, get_broadcaster
from food_ordering.services.catalog import ProductCatalog
from food_ordering.services.pricing import LineRequest, price_order
from food_ordering.services.schedule import AvailabilityVerdict, StoreAvailabilityConfig
from food_ordering.services.settings_store import SettingsStore
from food_ordering.services.state_machine import OrderStateMachine, get_state_machine
from food_ordering.tasks import dispatch_new_order_notification

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """Order lifecycle operations bound to one database session."""

    def __init__(
        self,
        db: AsyncSession,
        broadcaster: Optional[OrderBroadcaster] = None,
        state_machine: Optional[OrderStateMachine] = None,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = app_settings or get_settings()
        self.broadcaster = broadcaster or get_broadcaster()
        self.state_machine = state_machine or get_state_machine()
        self.settings_store = SettingsStore(db, self.settings)
        self.catalog = ProductCatalog(db)
        self.gate = AdmissionGate(tz=ZoneInfo(self.settings.store_timezone))
        self.clock = clock

    async def _load_config(self) -> Optional[StoreAvailabilityConfig]:
        try:
            return await self.settings_store.load_availability_config()
        except Exception:
            logger.exception("Failed to load store configuration")
            return None

    async def get_availability(self, now: Optional[datetime] = None) -> AvailabilityVerdict:
        config = await self._load_config()
        return self.gate.verdict(config, now or self.clock())

    async def create_order(self, request: OrderCreate, now: Optional[datetime] = None) -> Order:
        """
        Admit, price and persist a new order, then announce it.

        Raises:
            StoreClosedError: The store is not accepting orders
            OrderValidationError: Missing delivery destination or empty basket
            ProductNotFoundError: Unknown product under the reject policy
        """
        if (
            request.order_type == OrderType.DELIVERY
            and not request.address
            and (request.location_lat is None or request.location_lon is None)
        ):
            raise OrderValidationError("Delivery orders need an address or a location")

        # Admission runs in the same session as the insert below; see
        # food_ordering.services.admission for the accepted race window.
        now = now or self.clock()
        config = await self._load_config()
        self.gate.admit(config, now).raise_for_rejection()

        lines = [LineRequest(item.product_id, item.quantity) for item in request.items]
        prices = await self.catalog.get_products(line.product_id for line in lines)
        delivery_fee = (
            await self.settings_store.load_delivery_fee()
            if request.order_type == OrderType.DELIVERY
            else 0
        )
        priced = price_order(
            lines,
            prices,
            request.order_type,
            delivery_fee,
            self.settings.unknown_product_policy,
        )

        order = Order(
            status=OrderStatus.NEW,
            order_type=request.order_type,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            user_id=request.user_id,
            address=request.address,
            location_lat=request.location_lat,
            location_lon=request.location_lon,
            comment=request.comment,
            payment_type=request.payment_type,
            delivery_price=priced.delivery_fee,
            total_amount=priced.total_amount,
            created_at=now,
            items=[
                OrderItem(
                    position=position,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    price=line.unit_price,
                )
                for position, line in enumerate(priced.lines)
            ],
        )
        self.db.add(order)
        await self.db.commit()

        order = await self.get_order(order.id)
        payload = order_payload(order)
        self.broadcaster.publish(EventKind.ORDER_CREATED, payload)

        logger.info(
            f"Order #{order.id} created: {len(priced.lines)} item(s), total {priced.total_amount}"
            + (f", skipped {list(priced.skipped_product_ids)}" if priced.skipped_product_ids else "")
        )

        if self.settings.notify_admins_on_new_order:
            dispatch_new_order_notification(payload)

        return order

    async def get_order(self, order_id: int) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def list_orders(
        self,
        phone: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> tuple[int, list[Order]]:
        """
        Orders newest first.

        Returns:
            (total matching, page of orders)
        """
        query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        count_query = select(func.count(Order.id))

        if phone:
            query = query.where(Order.customer_phone == phone)
            count_query = count_query.where(Order.customer_phone == phone)
        if status:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return total, list(result.scalars().all())

    async def change_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        expected_status: Optional[OrderStatus] = None,
    ) -> Order:
        return await self.state_machine.transition(self.db, order_id, new_status, expected_status)
