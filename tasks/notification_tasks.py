import logging

from core.celery import celery_app
from core.config import settings
from core.db import SessionLocal
from models.order import Order
from services.email import send_templated_email
from services.notifications import SUBJECTS

logger = logging.getLogger(__name__)


def build_notification(order: Order, event: str) -> dict:
    return {
        "subject": SUBJECTS[event].format(order_number=order.order_number),
        "template": f"emails/order_{event}.txt",
        "context": {
            "customer_name": order.customer_name,
            "order_number": order.order_number,
            "total": order.total,
            "currency": order.currency,
            "tracking_number": order.tracking_number,
            "carrier": order.carrier,
            "refund_window_days": settings.REFUND_WINDOW_DAYS,
        },
    }


@celery_app.task(bind=True, max_retries=3)
def send_order_notification_task(self, order_id: int, event: str):
    """
    Email the customer about an order event.
    Retries up to 3 times on delivery failure.
    """
    with SessionLocal() as db:
        order = db.get(Order, order_id)
        if order is None:
            logger.warning("Notification %s skipped: order %s no longer exists", event, order_id)
            return {"status": "skipped", "reason": "order not found"}
        message = build_notification(order, event)
        to_email = order.email

    try:
        sent = send_templated_email(to_email, message["subject"], message["template"], message["context"])
    except Exception as exc:
        # Retry with exponential backoff
        countdown = min(2 ** self.request.retries, 60)
        logger.warning("Notification %s for order %s failed, retrying in %ss: %s", event, order_id, countdown, exc)
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "sent" if sent else "skipped", "to": to_email, "event": event}
