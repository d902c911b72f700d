from decimal import Decimal

import pytest

from food_ordering.core.config import UnknownProductPolicy
from food_ordering.core.exceptions import OrderValidationError, ProductNotFoundError
from food_ordering.models import OrderType
from food_ordering.services.pricing import (
    LineRequest,
    ProductPrice,
    delivery_fee_for,
    price_order,
    to_money,
)

PRICES = {
    "plov": ProductPrice("plov", Decimal("45000"), "Plov"),
    "samsa": ProductPrice("samsa", Decimal("10000"), "Samsa"),
}


def test_delivery_total_includes_fee():
    priced = price_order(
        [LineRequest("plov", 2), LineRequest("samsa", 1)],
        PRICES,
        OrderType.DELIVERY,
        Decimal("15000"),
    )
    assert priced.subtotal == Decimal("100000.00")
    assert priced.delivery_fee == Decimal("15000.00")
    assert priced.total_amount == Decimal("115000.00")
    assert [line.product_name for line in priced.lines] == ["Plov", "Samsa"]


def test_pickup_never_pays_delivery():
    priced = price_order([LineRequest("plov", 1)], PRICES, OrderType.PICKUP, Decimal("15000"))
    assert priced.delivery_fee == Decimal("0.00")
    assert priced.total_amount == Decimal("45000.00")


def test_delivery_fee_for():
    assert delivery_fee_for(OrderType.PICKUP, Decimal("9")) == Decimal("0.00")
    assert delivery_fee_for(OrderType.DELIVERY, Decimal("9.005")) == Decimal("9.01")


def test_unknown_product_skipped_by_default():
    priced = price_order(
        [LineRequest("ghost", 3), LineRequest("samsa", 2)],
        PRICES,
        OrderType.PICKUP,
        Decimal("0"),
    )
    assert priced.total_amount == Decimal("20000.00")
    assert priced.skipped_product_ids == ("ghost",)
    assert len(priced.lines) == 1


def test_unknown_product_rejected_under_reject_policy():
    with pytest.raises(ProductNotFoundError) as exc_info:
        price_order(
            [LineRequest("samsa", 1), LineRequest("ghost", 1)],
            PRICES,
            OrderType.PICKUP,
            Decimal("0"),
            UnknownProductPolicy.REJECT,
        )
    assert exc_info.value.status_code == 404


def test_nothing_resolvable_is_a_validation_error():
    with pytest.raises(OrderValidationError):
        price_order([LineRequest("ghost", 1)], PRICES, OrderType.DELIVERY, Decimal("0"))


def test_non_positive_quantity_rejected():
    with pytest.raises(OrderValidationError):
        price_order([LineRequest("plov", 0)], PRICES, OrderType.PICKUP, Decimal("0"))


def test_to_money_rounds_half_up():
    assert to_money("0.125") == Decimal("0.13")
    assert to_money(7) == Decimal("7.00")
