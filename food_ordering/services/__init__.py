"""
                        Services Module

Ordering core and its collaborators.

Services:
    - schedule / admission: store availability and the order admission gate
    - pricing / catalog: order totals from catalog prices
    - state_machine: order status transitions
    - broadcaster: realtime order event fan-out
    - orders: order lifecycle facade used by the API
    - settings_store: operator-editable store settings
    - otp: phone verification codes
    - notifications: Telegram/SMS delivery (Mock for development, Real for production)
"""

from food_ordering.services.broadcaster import OrderBroadcaster, get_broadcaster
from food_ordering.services.orders import OrderService
from food_ordering.services.state_machine import OrderStateMachine, get_state_machine

__all__ = [
    "OrderBroadcaster",
    "OrderService",
    "OrderStateMachine",
    "get_broadcaster",
    "get_state_machine",
]
