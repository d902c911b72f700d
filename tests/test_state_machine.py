import asyncio

import pytest

from food_ordering.core.exceptions import InvalidTransitionError, OrderNotFoundError
from food_ordering.models import OrderStatus, OrderType
from food_ordering.schemas import OrderCreate
from food_ordering.services.broadcaster import EventKind, get_broadcaster
from food_ordering.services.orders import OrderService
from food_ordering.services.state_machine import (
    OrderStateMachine,
    allowed_transitions,
    check_transition,
)

from tests.conftest import PLOV

S = OrderStatus


async def place_order(db, order_type=OrderType.DELIVERY):
    request = OrderCreate(
        order_type=order_type,
        items=[{"product_id": PLOV, "quantity": 1}],
        customer_phone="+998901112233",
        address="Chilonzor 9",
    )
    return await OrderService(db).create_order(request)


class TestTransitionTable:
    def test_happy_path_delivery(self):
        path = [S.NEW, S.COOKING, S.READY, S.DELIVERY, S.COMPLETED]
        for current, nxt in zip(path, path[1:]):
            check_transition(1, current, nxt)

    def test_pickup_completes_from_ready(self):
        assert S.COMPLETED in allowed_transitions(S.READY, OrderType.PICKUP)
        assert S.DELIVERY not in allowed_transitions(S.READY, OrderType.PICKUP)

    def test_confirmation_step(self):
        assert allowed_transitions(S.NEW, confirmation_step=True) == {S.CONFIRMED, S.CANCELLED}
        assert S.COOKING in allowed_transitions(S.CONFIRMED)

    @pytest.mark.parametrize("status", [S.NEW, S.CONFIRMED, S.COOKING, S.READY, S.DELIVERY])
    def test_cancel_from_any_live_status(self, status):
        check_transition(1, status, S.CANCELLED)

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELLED])
    def test_terminal_states_are_final(self, terminal):
        for target in S:
            with pytest.raises(InvalidTransitionError):
                check_transition(1, terminal, target)

    def test_skipping_ahead_is_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(9, S.NEW, S.DELIVERY)
        assert exc_info.value.to_dict()["current_status"] == "NEW"


async def test_transition_persists_and_publishes(db):
    order = await place_order(db)
    subscription = get_broadcaster().subscribe()
    machine = OrderStateMachine(get_broadcaster())

    updated = await machine.transition(db, order.id, S.COOKING)
    assert updated.status == S.COOKING
    assert updated.updated_at is not None

    event = await asyncio.wait_for(subscription.get(), timeout=1)
    assert event.kind == EventKind.ORDER_STATUS_CHANGED
    assert event.order["status"] == "COOKING"
    assert event.order["id"] == order.id


async def test_invalid_transition_leaves_order_untouched(db):
    order = await place_order(db)
    subscription = get_broadcaster().subscribe()
    machine = OrderStateMachine(get_broadcaster())

    with pytest.raises(InvalidTransitionError):
        await machine.transition(db, order.id, S.DELIVERY)

    assert (await OrderService(db).get_order(order.id)).status == S.NEW
    assert subscription.pending == 0


async def test_cancelled_order_cannot_be_revived(db):
    order = await place_order(db)
    machine = OrderStateMachine(get_broadcaster())
    await machine.transition(db, order.id, S.CANCELLED)

    with pytest.raises(InvalidTransitionError):
        await machine.transition(db, order.id, S.COOKING)


async def test_stale_expected_status_is_rejected(db):
    order = await place_order(db)
    machine = OrderStateMachine(get_broadcaster())
    await machine.transition(db, order.id, S.COOKING)

    with pytest.raises(InvalidTransitionError):
        await machine.transition(db, order.id, S.CANCELLED, expected=S.NEW)


async def test_unknown_order(db):
    with pytest.raises(OrderNotFoundError):
        await OrderStateMachine(get_broadcaster()).transition(db, 999, S.COOKING)


async def test_concurrent_operators_exactly_one_wins(db, session_factory):
    order = await place_order(db)
    machine = OrderStateMachine(get_broadcaster())
    subscription = get_broadcaster().subscribe()

    async def operator(target):
        async with session_factory() as session:
            return await machine.transition(session, order.id, target, expected=S.NEW)

    results = await asyncio.gather(
        operator(S.COOKING),
        operator(S.CANCELLED),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidTransitionError)]
    assert len(winners) == 1
    assert len(losers) == 1

    final = await OrderService(db).get_order(order.id)
    assert final.status == winners[0].status
    assert subscription.pending == 1
