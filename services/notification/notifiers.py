"""
services/notification/notifiers.py
One function per booking event. Each builds the template variables for its
event, resolves recipients and hands them to the dispatcher.

Business-side notifiers isolate every recipient: one failure is logged and
the rest are still attempted.
"""

import logging
from datetime import date, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from services.notification.dispatcher import DeliveryAttempt, send_notification
from services.notification.recipients import (
    Recipient,
    assigned_provider_recipient,
    booking_location,
    business_recipients,
    customer_recipient,
)
from shared.models.models import NotificationType
from shared.schemas.schemas import BookingDetail

logger = logging.getLogger(__name__)

NO_REASON = "No reason provided"


# ── Formatting ────────────────────────────────────────────────

def format_booking_date(value: Optional[date]) -> str:
    """Monday, January 6, 2025"""
    if value is None:
        return "Date TBD"
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def format_booking_time(value: Optional[time]) -> str:
    """2:30 PM"""
    if value is None:
        return "Time TBD"
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {meridiem}"


def format_amount(value: Optional[Decimal]) -> str:
    return f"{(value or Decimal('0')):.2f}"


def booking_variables(booking: BookingDetail) -> Dict[str, Any]:
    """Variables shared by every booking template."""
    customer = customer_recipient(booking)
    provider = assigned_provider_recipient(booking)
    return {
        "booking_id": str(booking.id),
        "booking_reference": booking.booking_reference or str(booking.id)[:8].upper(),
        "customer_name": customer.display_name if customer else "Customer",
        "provider_name": provider.display_name if provider else "Your provider",
        "service_name": booking.service.name if booking.service else "Service",
        "business_name": booking.business.business_name if booking.business else "",
        "booking_date": format_booking_date(booking.booking_date),
        "booking_time": format_booking_time(booking.start_time),
        "booking_location": booking_location(booking),
        "total_amount": format_amount(booking.total_amount),
        "special_instructions": booking.special_instructions or "",
    }


def _metadata(booking: BookingDetail, event_type: str, **extra: Any) -> Dict[str, Any]:
    return {"booking_id": str(booking.id), "event_type": event_type, **extra}


# ── Customer notifiers ────────────────────────────────────────

async def _notify_customer(
    session_factory: async_sessionmaker,
    booking: BookingDetail,
    notification_type: NotificationType,
    event_type: str,
) -> List[DeliveryAttempt]:
    recipient = customer_recipient(booking)
    if recipient is None:
        logger.info(f"Booking {booking.id} has no customer contact, skipping {notification_type.value}")
        return []

    return await send_notification(
        session_factory,
        recipient,
        notification_type,
        booking_variables(booking),
        metadata=_metadata(booking, event_type),
    )


async def notify_customer_booking_accepted(
    session_factory: async_sessionmaker, booking: BookingDetail, event_type: str = "booking_confirmed"
) -> List[DeliveryAttempt]:
    return await _notify_customer(
        session_factory, booking, NotificationType.CUSTOMER_BOOKING_ACCEPTED, event_type
    )


async def notify_customer_booking_completed(
    session_factory: async_sessionmaker, booking: BookingDetail, event_type: str = "booking_completed"
) -> List[DeliveryAttempt]:
    return await _notify_customer(
        session_factory, booking, NotificationType.CUSTOMER_BOOKING_COMPLETED, event_type
    )


async def notify_customer_booking_reminder(
    session_factory: async_sessionmaker, booking: BookingDetail, event_type: str = "booking_reminder"
) -> List[DeliveryAttempt]:
    return await _notify_customer(
        session_factory, booking, NotificationType.CUSTOMER_BOOKING_REMINDER, event_type
    )


# ── Business-side notifiers ───────────────────────────────────

async def _notify_business(
    session_factory: async_sessionmaker,
    booking: BookingDetail,
    notification_type: NotificationType,
    variables: Dict[str, Any],
    event_type: str,
) -> List[DeliveryAttempt]:
    async with session_factory() as db:
        recipients = await business_recipients(db, booking)

    attempts: List[DeliveryAttempt] = []
    for recipient in recipients:
        try:
            attempts.extend(
                await send_notification(
                    session_factory,
                    recipient,
                    notification_type,
                    {**variables, "provider_name": recipient.display_name},
                    metadata=_business_metadata(booking, recipient, event_type),
                )
            )
        except Exception:
            logger.exception(
                f"{notification_type.value} failed for {recipient.role.value} "
                f"{recipient.provider_id} on booking {booking.id}"
            )
    return attempts


def _business_metadata(booking: BookingDetail, recipient: Recipient, event_type: str) -> Dict[str, Any]:
    return _metadata(
        booking,
        event_type,
        business_id=str(booking.business_id) if booking.business_id else None,
        provider_id=str(recipient.provider_id) if recipient.provider_id else None,
        provider_role=recipient.role.value,
        assigned=recipient.assigned,
    )


async def notify_providers_booking_cancelled(
    session_factory: async_sessionmaker,
    booking: BookingDetail,
    reason: Optional[str] = None,
    event_type: str = "booking_cancelled",
) -> List[DeliveryAttempt]:
    variables = {
        **booking_variables(booking),
        "cancellation_reason": reason or booking.cancellation_reason or NO_REASON,
    }
    return await _notify_business(
        session_factory, booking, NotificationType.PROVIDER_BOOKING_CANCELLED, variables, event_type
    )


async def notify_providers_booking_rescheduled(
    session_factory: async_sessionmaker,
    booking: BookingDetail,
    reason: Optional[str] = None,
    event_type: str = "booking_rescheduled",
) -> List[DeliveryAttempt]:
    """booking_date/booking_time carry the original slot; new_booking_* the current one."""
    variables = {
        **booking_variables(booking),
        "booking_date": format_booking_date(booking.original_booking_date or booking.booking_date),
        "booking_time": format_booking_time(booking.original_start_time or booking.start_time),
        "new_booking_date": format_booking_date(booking.booking_date),
        "new_booking_time": format_booking_time(booking.start_time),
        "reschedule_reason": booking.reschedule_reason or reason or NO_REASON,
    }
    return await _notify_business(
        session_factory, booking, NotificationType.PROVIDER_BOOKING_RESCHEDULED, variables, event_type
    )
