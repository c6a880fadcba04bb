"""
services/booking/router.py
Booking status changes. The status write is the source of truth; the
notifications it triggers run detached and never affect the response.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.database import get_db, get_session_factory
from services.booking.status_service import update_booking_status
from services.notification.status_notifications import (
    DispatchOptions,
    dispatch_status_notifications,
)
from shared.schemas.schemas import StatusUpdateRequest, StatusUpdateResponse
from shared.utils.background import dispatch_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/status-update", response_model=StatusUpdateResponse)
async def update_status(
    data: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Set a booking's status and return the updated booking immediately.
    Customer and business notifications are dispatched in the background.
    """
    booking = await update_booking_status(db, data)

    if data.notify_customer or data.notify_provider:
        options = DispatchOptions(
            notify_customer=data.notify_customer,
            notify_provider=data.notify_provider,
            reason=data.reason,
            updated_by=data.updated_by,
        )
        dispatch_tracker.spawn(
            dispatch_status_notifications(session_factory, booking, data.new_status, options),
            name=f"status-notifications:{booking.id}",
        )
    else:
        logger.info(f"Notifications suppressed for booking {booking.id}")

    return StatusUpdateResponse(
        success=True,
        booking=booking,
        timestamp=datetime.now(timezone.utc),
    )
