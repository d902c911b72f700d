"""
SQLAlchemy Database Models

Order aggregate (orders + order_items) plus the two tables the ordering
core reads from its external collaborators:
- products: price lookup for total computation
- settings: operator-editable store configuration (string key/value)
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Text,
    Enum,
    Boolean,
    Float,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from food_ordering.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Canonical order status vocabulary."""
    NEW = "NEW"
    CONFIRMED = "CONFIRMED"
    COOKING = "COOKING"
    READY = "READY"
    DELIVERY = "DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class OrderType(str, enum.Enum):
    """Order type - Delivery or Pickup."""
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


MONEY = Numeric(12, 2)


class Order(Base):
    """
    Order aggregate root.

    Everything except ``status`` and ``updated_at`` is a snapshot written
    once at creation.
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    status = Column(
        Enum(OrderStatus, native_enum=False, length=20),
        default=OrderStatus.NEW,
        nullable=False,
        index=True
    )
    order_type = Column(
        Enum(OrderType, native_enum=False, length=20),
        default=OrderType.DELIVERY,
        nullable=False
    )

    # =========================================================================
    # CUSTOMER SNAPSHOT
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(20), nullable=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    address = Column(String(255), nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lon = Column(Float, nullable=True)
    comment = Column(Text, nullable=True)
    payment_type = Column(String(20), nullable=False, default="CASH")

    # =========================================================================
    # PRICING
    # =========================================================================
    delivery_price = Column(MONEY, nullable=False, default=0)
    total_amount = Column(MONEY, nullable=False)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.order_type.value} - {self.status.value}>"


class OrderItem(Base):
    """Line item owned by exactly one order; price is the unit price at order time."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_id = Column(String(64), nullable=False)
    product_name = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(MONEY, nullable=False)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.product_id} x{self.quantity} @ {self.price}>"


class Product(Base):
    """Catalog product. Maintained by the catalog admin; read here for prices."""
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    price = Column(MONEY, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Setting(Base):
    """Operator-editable store setting."""
    __tablename__ = "settings"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
