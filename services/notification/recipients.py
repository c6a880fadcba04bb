"""
services/notification/recipients.py
Who should hear about a booking event, and how to reach them.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import CustomerProfile, Provider, ProviderRole
from shared.schemas.schemas import BookingDetail, LocationSummary, ProviderSummary

logger = logging.getLogger(__name__)

LOCATION_PLACEHOLDER = "Location TBD"

BUSINESS_NOTIFY_ROLES = (ProviderRole.OWNER, ProviderRole.DISPATCHER)


class RecipientRole(str, PyEnum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    OWNER = "owner"
    DISPATCHER = "dispatcher"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass
class Recipient:
    user_id: Optional[uuid.UUID]
    role: RecipientRole
    display_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    provider_id: Optional[uuid.UUID] = None
    assigned: bool = False


def _join_name(first: Optional[str], last: Optional[str]) -> str:
    return " ".join(p for p in (first, last) if p).strip()


def _provider_recipient(provider: ProviderSummary, assigned: bool = False) -> Recipient:
    role = RecipientRole(provider.provider_role)
    return Recipient(
        user_id=provider.user_id,
        role=role,
        display_name=_join_name(provider.first_name, provider.last_name) or role.label,
        email=provider.email,
        phone=provider.phone,
        provider_id=provider.id,
        assigned=assigned,
    )


def customer_recipient(booking: BookingDetail) -> Optional[Recipient]:
    """Linked customer profile first, guest checkout fields otherwise."""
    customer = booking.customer
    if customer is not None:
        return Recipient(
            user_id=customer.user_id,
            role=RecipientRole.CUSTOMER,
            display_name=_join_name(customer.first_name, customer.last_name)
            or booking.guest_name
            or "Customer",
            email=customer.email or booking.guest_email,
            phone=customer.phone or booking.guest_phone,
        )

    if booking.guest_name or booking.guest_email or booking.guest_phone:
        return Recipient(
            user_id=None,
            role=RecipientRole.CUSTOMER,
            display_name=booking.guest_name or "Customer",
            email=booking.guest_email,
            phone=booking.guest_phone,
        )
    return None


def assigned_provider_recipient(booking: BookingDetail) -> Optional[Recipient]:
    if booking.provider is None:
        return None
    return _provider_recipient(booking.provider, assigned=True)


async def business_recipients(db: AsyncSession, booking: BookingDetail) -> List[Recipient]:
    """
    Every active owner and dispatcher of the booking's business, plus the
    assigned provider when active and not already on the list.
    """
    recipients: List[Recipient] = []
    seen = set()
    assigned_id = booking.provider.id if booking.provider else None

    if booking.business_id is not None:
        result = await db.execute(
            select(Provider)
            .where(
                Provider.business_id == booking.business_id,
                Provider.is_active.is_(True),
                Provider.provider_role.in_(BUSINESS_NOTIFY_ROLES),
            )
            .order_by(Provider.provider_role, Provider.created_at)
        )
        for provider in result.scalars().all():
            summary = ProviderSummary.model_validate(provider)
            recipients.append(_provider_recipient(summary, assigned=summary.id == assigned_id))
            seen.add(summary.id)

    if booking.provider is not None and booking.provider.is_active and assigned_id not in seen:
        recipients.append(_provider_recipient(booking.provider, assigned=True))

    if not recipients:
        logger.info(f"No business-side recipients for booking {booking.id}")
    return recipients


async def recipient_for_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[Recipient]:
    """Resolve a user id through customer profiles, then provider profiles."""
    customer = (
        await db.execute(select(CustomerProfile).where(CustomerProfile.user_id == user_id))
    ).scalars().first()
    if customer is not None:
        return Recipient(
            user_id=user_id,
            role=RecipientRole.CUSTOMER,
            display_name=customer.full_name or "Customer",
            email=customer.email,
            phone=customer.phone,
        )

    provider = (
        await db.execute(select(Provider).where(Provider.user_id == user_id))
    ).scalars().first()
    if provider is not None:
        return _provider_recipient(ProviderSummary.model_validate(provider))
    return None


def _format_location(location: Optional[LocationSummary]) -> Optional[str]:
    if location is None:
        return None
    region = " ".join(p for p in (location.state, location.postal_code) if p)
    parts = [location.address_line1, location.address_line2, location.city, region]
    formatted = ", ".join(p for p in parts if p)
    return formatted or location.location_name or None


def booking_location(booking: BookingDetail) -> str:
    """Business location, then the customer's (mobile service), then a placeholder."""
    return (
        _format_location(booking.business_location)
        or _format_location(booking.customer_location)
        or LOCATION_PLACEHOLDER
    )


def has_notifiable_parties(booking: BookingDetail) -> bool:
    return customer_recipient(booking) is not None or booking.provider is not None
