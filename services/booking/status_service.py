"""
services/booking/status_service.py
Persist a booking status change and return the joined booking snapshot
that the notification pipeline consumes.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.models.models import Booking, BookingStatusHistory
from shared.schemas.schemas import BookingDetail, StatusUpdateRequest
from shared.utils.errors import DataStoreError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("booking_id", "new_status", "updated_by")


def booking_detail_options() -> List:
    """Eager loads for every to-one relation in BookingDetail."""
    return [
        selectinload(Booking.customer),
        selectinload(Booking.provider),
        selectinload(Booking.business),
        selectinload(Booking.service),
        selectinload(Booking.business_location),
        selectinload(Booking.customer_location),
    ]


def _validate(request: StatusUpdateRequest) -> uuid.UUID:
    missing = [name for name in REQUIRED_FIELDS if not getattr(request, name)]
    if missing:
        raise ValidationError(
            "Missing required fields: bookingId, newStatus, updatedBy",
            details={
                "bookingId": bool(request.booking_id),
                "newStatus": bool(request.new_status),
                "updatedBy": bool(request.updated_by),
            },
        )
    try:
        return uuid.UUID(request.booking_id)
    except ValueError:
        raise ValidationError("bookingId must be a valid UUID", details={"bookingId": request.booking_id})


async def get_booking_detail(db: AsyncSession, booking_id: uuid.UUID) -> Optional[BookingDetail]:
    result = await db.execute(
        select(Booking)
        .options(*booking_detail_options())
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    return BookingDetail.model_validate(booking) if booking else None


async def update_booking_status(db: AsyncSession, request: StatusUpdateRequest) -> BookingDetail:
    """
    Write the new status (any string is accepted) and re-read the booking
    with its parties. The history row is best-effort and written after the
    status change is committed.
    """
    booking_id = _validate(request)

    try:
        booking = await db.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", details={"bookingId": str(booking_id)})

        previous_status = booking.booking_status
        booking.booking_status = request.new_status
        await db.commit()

        detail = await get_booking_detail(db, booking_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to update status for booking {booking_id}")
        raise DataStoreError("Failed to update booking", details=str(e))

    if detail is None:
        raise NotFoundError("Booking not found", details={"bookingId": str(booking_id)})

    logger.info(
        f"Booking {booking_id} status {previous_status} -> {request.new_status} "
        f"by {request.updated_by}"
    )
    await _record_status_history(db, booking_id, request)
    return detail


async def _record_status_history(
    db: AsyncSession, booking_id: uuid.UUID, request: StatusUpdateRequest
) -> None:
    try:
        db.add(
            BookingStatusHistory(
                booking_id=booking_id,
                status=request.new_status,
                changed_by=request.updated_by,
                reason=request.reason,
            )
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Failed to record status history for booking {booking_id}")
