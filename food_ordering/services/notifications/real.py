"""
Real Notification Service

Production implementation using:
- Telegram Bot API (over httpx) for admin new-order notifications
- Twilio for SMS (OTP codes)
"""

import logging
from typing import Any, Optional

import httpx
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from food_ordering.core.config import Settings, get_settings
from food_ordering.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    format_new_order_message,
)

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Production notification service using Telegram and Twilio."""

    def __init__(self, settings: Optional[Settings] = None, http_timeout: float = 10.0):
        self.settings = settings or get_settings()
        self.http_timeout = http_timeout

        # Initialize Twilio
        if self.settings.twilio_account_sid and self.settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                self.settings.twilio_account_sid,
                self.settings.twilio_auth_token
            )
            self.twilio_from_number = self.settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        if not self.settings.telegram_bot_token:
            logger.warning("Telegram bot token not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "real"

    def _bot_url(self, method: str) -> str:
        return f"{self.settings.telegram_api_base_url}/bot{self.settings.telegram_bot_token}/{method}"

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            result = self.twilio_client.messages.create(
                body=message,
                from_=self.twilio_from_number,
                to=to_phone
            )
            logger.info(f"SMS sent to {to_phone}: {result.sid}")
            return NotificationResult(success=True, message_id=result.sid, provider="twilio")

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(success=False, error_message=str(e), provider="twilio")

    async def notify_admins(self, order: dict[str, Any]) -> NotificationResult:
        """Post the order summary to every configured admin chat."""
        chat_ids = self.settings.telegram_admin_chat_ids_list
        if not self.settings.telegram_bot_token or not chat_ids:
            return NotificationResult(
                success=False,
                error_message="Telegram not configured",
                provider="telegram"
            )

        text = format_new_order_message(order)
        delivered: list[str] = []
        errors: list[str] = []

        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            for chat_id in chat_ids:
                try:
                    response = await client.post(
                        self._bot_url("sendMessage"),
                        json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                    )
                    response.raise_for_status()
                    message_id = response.json().get("result", {}).get("message_id")
                    delivered.append(str(message_id))
                except httpx.HTTPError as e:
                    logger.error(f"Telegram error for chat {chat_id}: {e}")
                    errors.append(f"{chat_id}: {e}")

        if errors and not delivered:
            return NotificationResult(
                success=False,
                error_message="; ".join(errors),
                provider="telegram"
            )

        logger.info(f"Order #{order.get('id')} announced to {len(delivered)} admin chat(s)")
        return NotificationResult(
            success=True,
            message_id=",".join(delivered),
            error_message="; ".join(errors) or None,
            provider="telegram"
        )

    async def health_check(self) -> bool:
        """Check the Telegram bot token is accepted."""
        if not self.settings.telegram_bot_token:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                response = await client.get(self._bot_url("getMe"))
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Telegram health check failed: {e}")
            return False
