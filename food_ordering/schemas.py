"""
Pydantic Schemas for Request/Response Validation
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Any
from datetime import datetime
import re

from food_ordering.models import OrderStatus, OrderType


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single requested line: which product and how many."""
    product_id: str = Field(..., min_length=1, max_length=64, examples=["3f1c2a9e-6d1b-4e55-9a43-0d2b1f7a8c10"])
    quantity: int = Field(..., ge=1, le=999, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""

    order_type: OrderType = Field(default=OrderType.DELIVERY, examples=["DELIVERY"])
    items: List[OrderItemCreate] = Field(..., min_length=1)

    customer_name: Optional[str] = Field(None, max_length=100, examples=["Aziz"])
    customer_phone: Optional[str] = Field(None, max_length=20, examples=["+998901234567"])
    user_id: Optional[str] = Field(None, max_length=64)

    address: Optional[str] = Field(None, max_length=255, examples=["Amir Temur ko'chasi 15"])
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lon: Optional[float] = Field(None, ge=-180, le=180)
    comment: Optional[str] = Field(None, max_length=500)
    payment_type: str = Field(default="CASH", max_length=20, examples=["CASH", "CARD"])

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        cleaned = re.sub(r"[^\d]", "", v)
        if len(cleaned) < 7:
            raise ValueError("Phone number must have at least 7 digits")
        return v.strip()

    @field_validator("payment_type")
    @classmethod
    def normalize_payment_type(cls, v: str) -> str:
        return v.strip().upper()


class StatusUpdateRequest(BaseModel):
    """
    Operator request to move an order to a new status.

    ``expected_status`` is the status the operator was looking at; when
    given, the change only applies if the order is still in that status.
    """
    status: OrderStatus
    expected_status: Optional[OrderStatus] = None

    @field_validator("status", "expected_status", mode="before")
    @classmethod
    def upper_case(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v


class SettingUpdate(BaseModel):
    value: str = Field(..., max_length=500)


class OtpRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=20, examples=["+998901234567"])


class OtpVerifyRequest(BaseModel):
    phone: str = Field(..., min_length=7, max_length=20)
    code: str = Field(..., min_length=4, max_length=8)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: Optional[str]
    quantity: int
    price: float


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: OrderStatus
    order_type: OrderType
    customer_name: Optional[str]
    customer_phone: Optional[str]
    user_id: Optional[str]
    address: Optional[str]
    location_lat: Optional[float]
    location_lon: Optional[float]
    comment: Optional[str]
    payment_type: str
    delivery_price: float
    total_amount: float
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: Optional[datetime]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class StoreStatusResponse(BaseModel):
    is_open: bool
    message: str
    mode: str
    next_change_time: Optional[str]
    phone: Optional[str]


class SettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str


class OtpResponse(BaseModel):
    success: bool
    expires_in: int


class OtpVerifyResponse(BaseModel):
    verified: bool


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    subscribers: int
    timestamp: datetime


def order_payload(order) -> dict[str, Any]:
    """JSON-ready representation of an order, as pushed to realtime subscribers."""
    return OrderResponse.model_validate(order).model_dump(mode="json")
