from celery import Celery
from kombu import Queue

from core.config import settings

NOTIFICATIONS_QUEUE = "notifications"

# Redis is both broker and result store
celery_app = Celery(
    "storefront_orders",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.notification_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Emails are short; a stuck SMTP session should not hold a worker for long
    task_time_limit=2 * 60,
    task_soft_time_limit=90,
    # Redeliver if a worker dies mid-send, at the cost of a rare duplicate email
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
    task_queues=[Queue(NOTIFICATIONS_QUEUE)],
    task_default_queue=NOTIFICATIONS_QUEUE,
    task_routes={"tasks.notification_tasks.*": {"queue": NOTIFICATIONS_QUEUE}},
)
