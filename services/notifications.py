"""
Order notifications.

``notify`` is fire-and-forget: it only queues a Celery task. Whatever goes
wrong while queueing is logged and swallowed, because a committed transition
must never be reported as failed on account of an email.
"""
import logging

from core.config import settings

logger = logging.getLogger(__name__)

SUBJECTS = {
    "confirmed": "Your order {order_number} is confirmed",
    "shipped": "Your order {order_number} has shipped",
    "delivered": "Your order {order_number} was delivered",
    "cancelled": "Your order {order_number} was cancelled",
    "refunded": "Your order {order_number} has been refunded",
}


def notify(order_id: int, event: str) -> bool:
    """Queue a notification for an order event. Returns True if it was queued."""
    if not settings.NOTIFICATIONS_ENABLED:
        return False
    if event not in SUBJECTS:
        logger.warning("No notification template for event %r (order %s)", event, order_id)
        return False
    try:
        from tasks.notification_tasks import send_order_notification_task

        send_order_notification_task.delay(order_id, event)
        return True
    except Exception:
        logger.exception("Failed to queue %s notification for order %s", event, order_id)
        return False
