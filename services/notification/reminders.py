"""
services/notification/reminders.py
Day-before reminders for confirmed bookings.

Runs from Celery beat once a day. A booking is skipped when a
customer_booking_reminder log row already mentions it today, so a re-run
on the same day does not remind twice.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.booking.status_service import booking_detail_options
from services.notification.notifiers import notify_customer_booking_reminder
from shared.models.models import Booking, BookingStatus, NotificationLog, NotificationType
from shared.schemas.schemas import BookingDetail

logger = logging.getLogger(__name__)


async def _reminded_today(db: AsyncSession, today: date) -> Set[str]:
    start_of_day = datetime.combine(today, time.min, tzinfo=timezone.utc)
    result = await db.execute(
        select(NotificationLog.log_metadata).where(
            NotificationLog.notification_type == NotificationType.CUSTOMER_BOOKING_REMINDER.value,
            NotificationLog.created_at >= start_of_day,
        )
    )
    return {str(m["booking_id"]) for m in result.scalars().all() if m and m.get("booking_id")}


async def send_day_before_reminders(
    session_factory: async_sessionmaker, today: Optional[date] = None
) -> Dict[str, int]:
    """Returns counts of reminders sent, skipped and failed."""
    today = today or datetime.now(timezone.utc).date()
    tomorrow = today + timedelta(days=1)

    async with session_factory() as db:
        result = await db.execute(
            select(Booking)
            .options(*booking_detail_options())
            .where(
                Booking.booking_status == BookingStatus.CONFIRMED.value,
                Booking.booking_date == tomorrow,
            )
        )
        bookings = [BookingDetail.model_validate(b) for b in result.scalars().all()]
        already_reminded = await _reminded_today(db, today)

    counts = {"sent": 0, "skipped": 0, "failed": 0}
    for booking in bookings:
        if str(booking.id) in already_reminded:
            counts["skipped"] += 1
            continue
        try:
            attempts = await notify_customer_booking_reminder(session_factory, booking)
        except Exception:
            logger.exception(f"Reminder failed for booking {booking.id}")
            counts["failed"] += 1
            continue

        if any(a.ok for a in attempts):
            counts["sent"] += 1
        elif attempts:
            counts["failed"] += 1
        else:
            counts["skipped"] += 1

    logger.info(
        f"Day-before reminders for {tomorrow}: {len(bookings)} bookings, "
        f"{counts['sent']} sent, {counts['skipped']} skipped, {counts['failed']} failed"
    )
    return counts
