#!/usr/bin/env python3
"""
Start a worker for the order notification queue.

    python celery_worker.py

Concurrency comes from CELERY_CONCURRENCY and the log level from LOG_LEVEL.
"""

from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app, NOTIFICATIONS_QUEUE
    from core.config import settings

    celery_app.worker_main([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        f"--concurrency={settings.CELERY_CONCURRENCY}",
        f"--queues={NOTIFICATIONS_QUEUE}",
        "--without-gossip",
        "--without-mingle",
    ])
