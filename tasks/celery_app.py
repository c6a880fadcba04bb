"""
tasks/celery_app.py
Celery application instance, shared across all task modules.

Workers are started with:
    celery -A tasks.celery_app worker --loglevel=info --concurrency=4

Beat scheduler (periodic tasks):
    celery -A tasks.celery_app beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from config.logging_config import configure_logging
from config.settings import settings

celery_app = Celery(
    "booking_notifications",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "tasks.notification_tasks",
    ],
)

# ── Configuration ─────────────────────────────────────────────────────────────

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Delivery is at-most-once: ack on receipt so a crashed worker never re-sends
    task_acks_late=False,

    # Result expiry: keep task results for 1 hour
    result_expires=3600,

    task_routes={
        "tasks.notification_tasks.*": {"queue": "notifications"},
    },

    # Worker prefetch: 1 task at a time for long-running tasks
    worker_prefetch_multiplier=1,
)

# ── Periodic Tasks (Beat Schedule) ────────────────────────────────────────────

celery_app.conf.beat_schedule = {
    # Remind customers about tomorrow's confirmed bookings, once a day
    "send-day-before-reminders": {
        "task": "tasks.notification_tasks.send_booking_reminders",
        "schedule": crontab(hour=settings.REMINDER_HOUR_UTC, minute=0),
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging()
