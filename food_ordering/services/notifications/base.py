"""
Notification Service Abstract Base Class

Defines the interface for out-of-band notifications:
- new-order summaries for the admin Telegram chats
- OTP codes sent to customers by SMS

Supports both Mock (development) and Real (production) implementations.
"""

import html
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


def _text(value: Any, default: str = "-") -> str:
    """User-supplied text, escaped for Telegram HTML."""
    return html.escape(str(value)) if value else default


def format_amount(value: Any) -> str:
    return f"{float(value or 0):,.0f}".replace(",", " ")


def format_new_order_message(order: dict[str, Any]) -> str:
    """Render the admin chat message for a new order (Telegram HTML)."""
    lines = [
        f"- {_text(item.get('product_name') or item.get('product_id'))} x{item['quantity']} "
        f"({format_amount(item['price'] * item['quantity'])})"
        for item in order.get("items", [])
    ]
    delivery = order.get("delivery_price") or 0

    parts = [
        f"🆕 <b>New order #{order['id']}</b> ({order.get('order_type')})",
        "",
        f"👤 <b>Customer:</b> {_text(order.get('customer_name'))}",
        f"📞 <b>Phone:</b> {_text(order.get('customer_phone'))}",
        f"📍 <b>Address:</b> {_text(order.get('address'), 'not specified')}",
        f"💳 <b>Payment:</b> {_text(order.get('payment_type'))}",
        "",
        "🛒 <b>Items:</b>",
        *lines,
    ]
    if delivery:
        parts.append(f"🚚 Delivery: {format_amount(delivery)}")
    parts += [
        "",
        f"📝 <b>Comment:</b> {_text(order.get('comment'))}",
        "",
        f"💰 <b>Total: {format_amount(order.get('total_amount'))}</b>",
    ]
    return "\n".join(parts)


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def notify_admins(self, order: dict[str, Any]) -> NotificationResult:
        """Post a new-order summary to every admin chat."""
        pass

    async def send_otp(self, to_phone: str, code: str) -> NotificationResult:
        """Send a verification code by SMS."""
        return await self.send_sms(to_phone, f"Your verification code: {code}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
