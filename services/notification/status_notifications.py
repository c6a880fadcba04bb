"""
services/notification/status_notifications.py
Fan-out of a single booking status change into notifier calls.

Rules are independent: every rule whose condition holds is run, in order,
and a failing rule never stops the ones after it.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from services.notification import notifiers
from services.notification.recipients import has_notifiable_parties
from shared.models.models import BookingStatus
from shared.schemas.schemas import BookingDetail

logger = logging.getLogger(__name__)

ACCEPTED_STATUSES = {BookingStatus.CONFIRMED.value, BookingStatus.ACCEPTED.value}


@dataclass(frozen=True)
class DispatchOptions:
    notify_customer: bool = True
    notify_provider: bool = True
    reason: Optional[str] = None
    updated_by: Optional[str] = None


def is_rescheduled(booking: BookingDetail) -> bool:
    if booking.original_booking_date and booking.original_booking_date != booking.booking_date:
        return True
    if booking.original_start_time and booking.original_start_time != booking.start_time:
        return True
    return bool(booking.reschedule_reason or booking.rescheduled_at)


Notify = Callable[[async_sessionmaker, BookingDetail, DispatchOptions, str], Awaitable[object]]


@dataclass(frozen=True)
class StatusRule:
    name: str
    applies: Callable[[BookingDetail, str, DispatchOptions], bool]
    notify: Notify


async def _customer_accepted(session_factory, booking, options, event_type):
    return await notifiers.notify_customer_booking_accepted(session_factory, booking, event_type)


async def _customer_completed(session_factory, booking, options, event_type):
    return await notifiers.notify_customer_booking_completed(session_factory, booking, event_type)


async def _providers_cancelled(session_factory, booking, options, event_type):
    return await notifiers.notify_providers_booking_cancelled(
        session_factory, booking, options.reason, event_type
    )


async def _providers_rescheduled(session_factory, booking, options, event_type):
    return await notifiers.notify_providers_booking_rescheduled(
        session_factory, booking, options.reason, "booking_rescheduled"
    )


STATUS_RULES = (
    StatusRule(
        "customer_booking_accepted",
        lambda booking, status, options: options.notify_customer and status in ACCEPTED_STATUSES,
        _customer_accepted,
    ),
    StatusRule(
        "customer_booking_completed",
        lambda booking, status, options: (
            options.notify_customer and status == BookingStatus.COMPLETED.value
        ),
        _customer_completed,
    ),
    StatusRule(
        "provider_booking_cancelled",
        lambda booking, status, options: (
            options.notify_provider and status == BookingStatus.CANCELLED.value
        ),
        _providers_cancelled,
    ),
    StatusRule(
        "provider_booking_rescheduled",
        lambda booking, status, options: options.notify_provider and is_rescheduled(booking),
        _providers_rescheduled,
    ),
)


async def dispatch_status_notifications(
    session_factory: async_sessionmaker,
    booking: BookingDetail,
    new_status: str,
    options: DispatchOptions,
) -> List[str]:
    """Run every matching rule. Returns the names of the rules that fired."""
    if not has_notifiable_parties(booking):
        logger.warning(f"Booking {booking.id} has no customer or provider data, skipping notifications")
        return []

    event_type = f"booking_{new_status}"
    fired: List[str] = []
    for rule in STATUS_RULES:
        if not rule.applies(booking, new_status, options):
            continue
        fired.append(rule.name)
        try:
            await rule.notify(session_factory, booking, options, event_type)
        except Exception:
            logger.exception(f"Notification rule {rule.name} failed for booking {booking.id}")

    logger.info(f"Booking {booking.id} -> {new_status}: fired {fired or 'no'} notification rules")
    return fired
