"""
Core module initialization.
Exports configuration, logging utilities and domain exceptions.
"""

from food_ordering.core.config import get_settings, Settings, EnvironmentMode, setup_logging
from food_ordering.core.exceptions import (
    OrderingError,
    OrderValidationError,
    StoreClosedError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "setup_logging",
    "OrderingError",
    "OrderValidationError",
    "StoreClosedError",
    "InvalidTransitionError",
    "OrderNotFoundError",
    "ProductNotFoundError",
]
