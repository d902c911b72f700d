"""
Celery Tasks
Background delivery of new-order notifications to the admin chats.
"""

import asyncio
import logging
import time
from typing import Any

from food_ordering.celery_worker import celery_app
from food_ordering.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


class NotificationFailed(Exception):
    """Raised so Celery retries a notification the provider refused."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(NotificationFailed,),
    retry_backoff=True
)
def send_new_order_notification(self, order: dict[str, Any]) -> dict:
    """
    Announce a new order in the admin Telegram chats.
    This task runs asynchronously via Celery worker.

    Args:
        order: Order payload as published to realtime subscribers

    Returns:
        dict: Result of the notification
    """
    task_id = self.request.id
    order_id = order.get("id", "unknown")
    start_time = time.time()

    result = asyncio.run(get_notification_service().notify_admins(order))
    elapsed = round(time.time() - start_time, 3)

    if not result.success:
        logger.warning(f"Task {task_id}: order #{order_id} notification failed - {result.error_message}")
        raise NotificationFailed(result.error_message or "notification failed")

    logger.info(f"Task {task_id}: order #{order_id} announced in {elapsed}s")
    return {
        "success": True,
        "order_id": order_id,
        "message_id": result.message_id,
        "provider": result.provider,
        "task_id": task_id,
        "processing_time_seconds": elapsed,
    }


# Inline notifications scheduled in eager mode; kept referenced until done
_inline_notifications: set[asyncio.Task] = set()


async def _notify_inline(order: dict[str, Any]) -> None:
    order_id = order.get("id", "unknown")
    try:
        result = await get_notification_service().notify_admins(order)
    except Exception:
        logger.exception(f"Inline notification for order #{order_id} crashed")
        return

    if result.success:
        logger.info(f"Order #{order_id} announced inline ({result.provider})")
    else:
        logger.warning(f"Inline notification for order #{order_id} failed - {result.error_message}")


def dispatch_new_order_notification(order: dict[str, Any]) -> bool:
    """
    Queue the admin notification for ``order``.

    With ``task_always_eager`` set and an event loop running (an API
    request), the task body cannot call ``asyncio.run``, so the
    notification is scheduled on the running loop instead.

    Broker failures are logged and reported as False; they never fail the
    order that triggered them.
    """
    if celery_app.conf.task_always_eager:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(_notify_inline(order))
            _inline_notifications.add(task)
            task.add_done_callback(_inline_notifications.discard)
            return True

    try:
        send_new_order_notification.delay(order)
        return True
    except Exception as e:
        logger.error(f"Could not queue notification for order #{order.get('id')}: {e}")
        return False
