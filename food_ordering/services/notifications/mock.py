"""
Mock Notification Service

Simulates SMS and admin chat notifications for development.
No actual messages are sent - just logged.
"""

import asyncio
import random
import uuid
import logging
from typing import Any

from food_ordering.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    format_new_order_message,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.05,
        max_latency: float = 0.2,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[dict[str, Any]] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "sms", "to": to_phone, "text": message})
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]} (ID: {message_id})")

        return NotificationResult(success=True, message_id=message_id, provider="mock")

    async def notify_admins(self, order: dict[str, Any]) -> NotificationResult:
        """Simulate posting the new-order summary to admin chats."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock admin notification failed (simulated) for order #{order.get('id')}")
            return NotificationResult(
                success=False,
                error_message="Simulated chat failure",
                provider="mock"
            )

        text = format_new_order_message(order)
        message_id = f"tg_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append({"channel": "admin", "order_id": order.get("id"), "text": text})
        logger.info(f"Mock admin notification for order #{order.get('id')} (ID: {message_id})")

        return NotificationResult(success=True, message_id=message_id, provider="mock")

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
