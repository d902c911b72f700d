"""
Domain Exceptions

Every error the ordering core raises derives from ``OrderingError``.
Each class carries the HTTP status and machine-readable error code the
request boundary (``food_ordering.main``) turns into an ``ErrorResponse``.
"""

from typing import Any, Optional


class OrderingError(Exception):
    """Base class for recoverable ordering errors."""

    status_code: int = 400
    error: str = "ordering_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": False,
            "error": self.error,
            "detail": self.message,
        }
        payload.update(self.extra)
        return payload


class OrderValidationError(OrderingError):
    """Request is well-formed JSON but cannot become an order."""

    status_code = 422
    error = "validation_error"


class StoreClosedError(OrderingError):
    """The admission gate vetoed a new order."""

    status_code = 409
    error = "store_closed"

    def __init__(self, message: str, next_change_time: Optional[str] = None):
        super().__init__(message, next_change_time=next_change_time)
        self.next_change_time = next_change_time


class InvalidTransitionError(OrderingError):
    """Requested status is not a successor of the current one."""

    status_code = 409
    error = "invalid_transition"

    def __init__(self, order_id: int, current: str, requested: str, reason: Optional[str] = None):
        message = reason or f"Order #{order_id} cannot move from {current} to {requested}"
        super().__init__(message, order_id=order_id, current_status=current, requested_status=requested)
        self.order_id = order_id
        self.current = current
        self.requested = requested


class OrderNotFoundError(OrderingError):
    status_code = 404
    error = "order_not_found"

    def __init__(self, order_id: int):
        super().__init__(f"Order #{order_id} not found", order_id=order_id)
        self.order_id = order_id


class ProductNotFoundError(OrderingError):
    status_code = 404
    error = "product_not_found"

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found", product_id=product_id)
        self.product_id = product_id
