"""
Order Total Computation

Turns requested line items into priced, snapshotted lines:

    total_amount = sum(unit_price_i * quantity_i) + delivery_fee(order_type)

Unit prices and the delivery fee are copied into the order at creation
time and never recomputed, so later catalog or settings changes do not
alter existing orders.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional

from food_ordering.core.config import UnknownProductPolicy
from food_ordering.core.exceptions import OrderValidationError, ProductNotFoundError
from food_ordering.models import OrderType

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Normalize a numeric value to a two-decimal ``Decimal``."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineRequest:
    """A (product_id, quantity) pair as submitted by the customer."""
    product_id: str
    quantity: int


@dataclass(frozen=True)
class ProductPrice:
    """Price lookup result for a single catalog product."""
    product_id: str
    price: Decimal
    name: Optional[str] = None


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    product_name: Optional[str]
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricedOrder:
    """
    Priced basket ready to be persisted.

    Attributes:
        lines: Resolved lines in request order
        subtotal: Sum of line totals
        delivery_fee: Fee snapshot (0 for pickup)
        total_amount: subtotal + delivery_fee
        skipped_product_ids: Requested ids the catalog could not resolve
    """
    lines: tuple[PricedLine, ...]
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    skipped_product_ids: tuple[str, ...] = ()


def delivery_fee_for(order_type: OrderType, configured_fee: Decimal) -> Decimal:
    """Pickup orders never carry a delivery fee."""
    if order_type == OrderType.PICKUP:
        return to_money(0)
    return to_money(configured_fee)


def price_order(
    lines: Iterable[LineRequest],
    prices: Mapping[str, ProductPrice],
    order_type: OrderType,
    delivery_fee: Decimal,
    unknown_product_policy: UnknownProductPolicy = UnknownProductPolicy.SKIP,
) -> PricedOrder:
    """
    Price a basket against a product price lookup.

    Args:
        lines: Requested (product_id, quantity) pairs
        prices: Product id -> price lookup result for every resolvable id
        order_type: DELIVERY or PICKUP
        delivery_fee: Configured delivery fee
        unknown_product_policy: skip unresolvable ids or reject the order

    Returns:
        PricedOrder

    Raises:
        OrderValidationError: Non-positive quantity or nothing left to order
        ProductNotFoundError: Unknown product under the REJECT policy
    """
    priced: list[PricedLine] = []
    skipped: list[str] = []

    for line in lines:
        if line.quantity < 1:
            raise OrderValidationError(
                f"Quantity for product {line.product_id} must be positive",
                product_id=line.product_id,
            )

        product = prices.get(line.product_id)
        if product is None:
            if unknown_product_policy == UnknownProductPolicy.REJECT:
                raise ProductNotFoundError(line.product_id)
            logger.warning(f"Skipping unknown product {line.product_id} (x{line.quantity})")
            skipped.append(line.product_id)
            continue

        priced.append(PricedLine(
            product_id=line.product_id,
            product_name=product.name,
            quantity=line.quantity,
            unit_price=to_money(product.price),
        ))

    if not priced:
        raise OrderValidationError(
            "None of the requested products are available",
            skipped_product_ids=skipped,
        )

    subtotal = sum((line.line_total for line in priced), Decimal("0"))
    fee = delivery_fee_for(order_type, delivery_fee)

    return PricedOrder(
        lines=tuple(priced),
        subtotal=to_money(subtotal),
        delivery_fee=fee,
        total_amount=to_money(subtotal + fee),
        skipped_product_ids=tuple(skipped),
    )
