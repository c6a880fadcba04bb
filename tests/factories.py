"""
tests/factories.py
Builders for bookings, parties and templates used across the test suite.
"""

import uuid
from datetime import date, time
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import (
    Booking,
    BusinessLocation,
    BusinessProfile,
    CustomerLocation,
    CustomerProfile,
    NotificationTemplate,
    NotificationType,
    Provider,
    ProviderRole,
    Service,
    UserNotificationSettings,
)


def make_customer(**kwargs) -> CustomerProfile:
    defaults = dict(
        user_id=uuid.uuid4(),
        first_name="Ava",
        last_name="Stone",
        email="ava@example.com",
        phone="5551234567",
    )
    defaults.update(kwargs)
    return CustomerProfile(**defaults)


def make_business(**kwargs) -> BusinessProfile:
    defaults = dict(business_name="Serenity Spa", contact_email="hello@serenity.example")
    defaults.update(kwargs)
    return BusinessProfile(**defaults)


def make_provider(business: Optional[BusinessProfile], role=ProviderRole.PROVIDER, **kwargs) -> Provider:
    suffix = uuid.uuid4().hex[:6]
    defaults = dict(
        user_id=uuid.uuid4(),
        business=business,
        first_name=role.value.capitalize(),
        last_name=suffix,
        email=f"{role.value}-{suffix}@serenity.example",
        phone="5559876543",
        provider_role=role,
        is_active=True,
    )
    defaults.update(kwargs)
    return Provider(**defaults)


def make_booking(
    customer: Optional[CustomerProfile] = None,
    provider: Optional[Provider] = None,
    business: Optional[BusinessProfile] = None,
    **kwargs,
) -> Booking:
    defaults = dict(
        booking_reference="BK-1001",
        booking_status="pending",
        booking_date=date(2025, 1, 6),
        start_time=time(14, 30),
        total_amount=Decimal("120.00"),
        customer=customer,
        provider=provider,
        business=business,
        service=Service(name="Deep Tissue Massage"),
    )
    defaults.update(kwargs)
    return Booking(**defaults)


def make_business_location(**kwargs) -> BusinessLocation:
    defaults = dict(address_line1="12 Palm Ave", city="Miami", state="FL", postal_code="33101")
    defaults.update(kwargs)
    return BusinessLocation(**defaults)


def make_customer_location(**kwargs) -> CustomerLocation:
    defaults = dict(address_line1="400 Ocean Dr", city="Miami Beach", state="FL", postal_code="33139")
    defaults.update(kwargs)
    return CustomerLocation(**defaults)


def make_settings(user_id: uuid.UUID, **kwargs) -> UserNotificationSettings:
    defaults = dict(
        user_id=user_id,
        email_notifications=True,
        sms_notifications=False,
        quiet_hours_enabled=False,
    )
    defaults.update(kwargs)
    return UserNotificationSettings(**defaults)


def make_template(notification_type: NotificationType, **kwargs) -> NotificationTemplate:
    key = NotificationType(notification_type).value
    defaults = dict(
        template_key=key,
        template_name=key.replace("_", " ").title(),
        email_subject=f"[{key}] {{{{service_name}}}} on {{{{booking_date}}}}",
        email_body_html=(
            "<p>Hi {{customer_name}}, {{provider_name}} at {{business_name}}: "
            "{{service_name}} on {{booking_date}} at {{booking_time}}, {{booking_location}}.</p>"
        ),
        email_body_text="{{service_name}} on {{booking_date}} at {{booking_time}}",
        sms_body=f"{key}: {{{{service_name}}}} {{{{booking_date}}}}",
        is_active=True,
    )
    defaults.update(kwargs)
    return NotificationTemplate(**defaults)


async def seed_templates(
    db: AsyncSession, types: Optional[Iterable[NotificationType]] = None
) -> None:
    for notification_type in types or NotificationType:
        db.add(make_template(notification_type))
    await db.commit()


async def persist(db: AsyncSession, *objects):
    db.add_all(objects)
    await db.commit()
    return objects[0] if len(objects) == 1 else objects
