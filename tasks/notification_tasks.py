"""
tasks/notification_tasks.py
Celery tasks for scheduled notification work.

Tasks run the async pipeline with asyncio.run() on a throwaway engine:
the API's pooled engine is bound to the web process's event loop.

Usage from a shell:
    from tasks.notification_tasks import send_booking_reminders
    send_booking_reminders.delay()
"""

import asyncio
import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings
from services.notification.reminders import send_day_before_reminders
from tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_reminders(today: Optional[date]) -> Dict[str, int]:
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    try:
        return await send_day_before_reminders(session_factory, today)
    finally:
        await engine.dispose()


@celery_app.task
def send_booking_reminders(today: Optional[str] = None) -> Dict[str, int]:
    """
    Beat task: runs once a day.
    Reminds customers of confirmed bookings scheduled for tomorrow.
    `today` (YYYY-MM-DD) overrides the current UTC date for manual re-runs.
    """
    run_date = date.fromisoformat(today) if today else None
    try:
        counts = asyncio.run(_run_reminders(run_date))
    except Exception as e:
        logger.exception(f"send_booking_reminders failed: {e}")
        raise
    logger.info(f"send_booking_reminders finished: {counts}")
    return counts
