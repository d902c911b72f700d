"""
Order State Machine

    NEW ─► COOKING ─► READY ─► DELIVERY ─► COMPLETED
     │        ▲         │
     └► CONFIRMED       └──► COMPLETED        (PICKUP orders)

    CANCELLED is reachable from every non-terminal state.
    COMPLETED and CANCELLED are terminal.

NEW goes through CONFIRMED only when the confirmation step is enabled
(``ORDER_CONFIRMATION_STEP``); otherwise it goes straight to COOKING.

Status writes are a compare-and-swap on the status the caller based its
decision on, so two operators racing from the same status cannot both win.
Transitions of one order are also serialized in-process so status-changed
events are published in commit order.
"""

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import get_settings
from food_ordering.core.exceptions import InvalidTransitionError, OrderNotFoundError
from food_ordering.models import Order, OrderStatus, OrderType
from food_ordering.schemas import order_payload
from food_ordering.services.broadcaster import EventKind, OrderBroadcaster, get_broadcaster

logger = logging.getLogger(__name__)

S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.NEW: frozenset({S.COOKING, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COOKING, S.CANCELLED}),
    S.COOKING: frozenset({S.READY, S.CANCELLED}),
    S.READY: frozenset({S.DELIVERY, S.CANCELLED}),
    S.DELIVERY: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}


def allowed_transitions(
    status: OrderStatus,
    order_type: OrderType = OrderType.DELIVERY,
    confirmation_step: bool = False,
) -> frozenset[OrderStatus]:
    """Successor set of ``status`` for an order of ``order_type``."""
    if status == S.NEW and confirmation_step:
        return frozenset({S.CONFIRMED, S.CANCELLED})
    if status == S.READY and order_type == OrderType.PICKUP:
        return frozenset({S.COMPLETED, S.CANCELLED})
    return TRANSITIONS[status]


def check_transition(
    order_id: int,
    current: OrderStatus,
    requested: OrderStatus,
    order_type: OrderType = OrderType.DELIVERY,
    confirmation_step: bool = False,
) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> requested`` is allowed."""
    if current.is_terminal:
        raise InvalidTransitionError(
            order_id, current.value, requested.value,
            reason=f"Order #{order_id} is already {current.value}",
        )
    if requested not in allowed_transitions(current, order_type, confirmation_step):
        raise InvalidTransitionError(order_id, current.value, requested.value)


class OrderStateMachine:
    """Validates, persists and announces order status changes."""

    def __init__(self, broadcaster: OrderBroadcaster, confirmation_step: bool = False):
        self.broadcaster = broadcaster
        self.confirmation_step = confirmation_step
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, order_id: int) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock

    async def _load(self, db: AsyncSession, order_id: int) -> Order:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def transition(
        self,
        db: AsyncSession,
        order_id: int,
        requested: OrderStatus,
        expected: Optional[OrderStatus] = None,
    ) -> Order:
        """
        Move an order to ``requested``.

        Args:
            db: Session to write through
            order_id: Order to change
            requested: Target status
            expected: Status the caller observed; defaults to the stored one

        Returns:
            The updated order, after the status-changed event was published

        Raises:
            OrderNotFoundError: Unknown order id
            InvalidTransitionError: Not a successor, terminal, stale
                ``expected`` or lost a concurrent race
        """
        order = await self._load(db, order_id)
        observed = expected or order.status

        if expected is not None and expected != order.status:
            raise InvalidTransitionError(
                order_id, order.status.value, requested.value,
                reason=f"Order #{order_id} is {order.status.value}, not {expected.value}",
            )

        check_transition(order_id, observed, requested, order.order_type, self.confirmation_step)

        lock = self._lock_for(order_id)
        async with lock:
            result = await db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == observed)
                .values(status=requested, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                latest = await self._load(db, order_id)
                logger.warning(
                    f"Order #{order_id}: {observed.value} -> {requested.value} lost to a "
                    f"concurrent change (now {latest.status.value})"
                )
                raise InvalidTransitionError(
                    order_id, latest.status.value, requested.value,
                    reason=f"Order #{order_id} changed concurrently to {latest.status.value}",
                )

            await db.commit()
            order = await self._load(db, order_id)
            self.broadcaster.publish(EventKind.ORDER_STATUS_CHANGED, order_payload(order))

        logger.info(f"Order #{order_id}: {observed.value} -> {requested.value}")
        return order


@lru_cache()
def get_state_machine() -> OrderStateMachine:
    """Get the process-wide state machine (shares the per-order locks)."""
    return OrderStateMachine(
        broadcaster=get_broadcaster(),
        confirmation_step=get_settings().order_confirmation_step,
    )


def reset_state_machine() -> None:
    get_state_machine.cache_clear()
