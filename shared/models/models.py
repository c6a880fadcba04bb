"""
shared/models/models.py
All SQLAlchemy ORM models for the booking notification service.
UUID primary keys throughout; types stay portable so SQLite can back the tests.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ── Enumerations ──────────────────────────────────────────────

class BookingStatus(str, PyEnum):
    """Statuses the fan-out rules react to. The column itself accepts any string."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DECLINED = "declined"
    NO_SHOW = "no_show"


class NotificationType(str, PyEnum):
    CUSTOMER_WELCOME = "customer_welcome"
    CUSTOMER_BOOKING_ACCEPTED = "customer_booking_accepted"
    CUSTOMER_BOOKING_COMPLETED = "customer_booking_completed"
    CUSTOMER_BOOKING_REMINDER = "customer_booking_reminder"
    PROVIDER_NEW_BOOKING = "provider_new_booking"
    PROVIDER_BOOKING_CANCELLED = "provider_booking_cancelled"
    PROVIDER_BOOKING_RESCHEDULED = "provider_booking_rescheduled"
    ADMIN_BUSINESS_VERIFICATION = "admin_business_verification"


class NotificationChannel(str, PyEnum):
    EMAIL = "email"
    SMS = "sms"


class DeliveryStatus(str, PyEnum):
    SENT = "sent"
    FAILED = "failed"


class ProviderRole(str, PyEnum):
    OWNER = "owner"
    DISPATCHER = "dispatcher"
    PROVIDER = "provider"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ── Parties ───────────────────────────────────────────────────

class CustomerProfile(TimestampMixin, Base):
    """Customer account profile. user_id is the identity-provider user."""
    __tablename__ = "customer_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    __table_args__ = (Index("ix_customer_profiles_user_id", "user_id"),)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()


class BusinessProfile(TimestampMixin, Base):
    __tablename__ = "business_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    providers: Mapped[List["Provider"]] = relationship(back_populates="business")


class Provider(TimestampMixin, Base):
    """A person working for a business: owner, dispatcher, or service provider."""
    __tablename__ = "providers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("business_profiles.id"), nullable=True
    )
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    provider_role: Mapped[ProviderRole] = mapped_column(
        Enum(
            ProviderRole,
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            length=20,
        ),
        nullable=False,
        default=ProviderRole.PROVIDER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    business: Mapped[Optional["BusinessProfile"]] = relationship(back_populates="providers")

    __table_args__ = (
        Index("ix_providers_user_id", "user_id"),
        Index("ix_providers_business_role", "business_id", "provider_role"),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()

    def __repr__(self) -> str:
        return f"<Provider {self.id} ({self.provider_role})>"


class Service(Base):
    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class _AddressColumns:
    address_line1: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class BusinessLocation(_AddressColumns, Base):
    """Where an in-studio service happens."""
    __tablename__ = "business_locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("business_profiles.id"), nullable=True
    )
    location_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class CustomerLocation(_AddressColumns, Base):
    """Where a mobile service happens."""
    __tablename__ = "customer_locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customer_profiles.id"), nullable=True
    )
    location_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


# ── Booking ───────────────────────────────────────────────────

class Booking(TimestampMixin, Base):
    """
    A scheduled service engagement.
    Informal lifecycle: pending → confirmed → in_progress → completed, with
    cancelled | declined | no_show reachable from any non-terminal state.
    Nothing enforces it: booking_status stores whatever string it is given.
    """
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_reference: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customer_profiles.id"), nullable=True
    )
    provider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("providers.id"), nullable=True
    )
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("business_profiles.id"), nullable=True
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("services.id"), nullable=True
    )
    business_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("business_locations.id"), nullable=True
    )
    customer_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customer_locations.id"), nullable=True
    )

    # Status
    booking_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BookingStatus.PENDING.value
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Schedule
    booking_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    original_booking_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    original_start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    reschedule_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rescheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Guest checkout
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships (all to-one)
    customer: Mapped[Optional["CustomerProfile"]] = relationship()
    provider: Mapped[Optional["Provider"]] = relationship()
    business: Mapped[Optional["BusinessProfile"]] = relationship()
    service: Mapped[Optional["Service"]] = relationship()
    business_location: Mapped[Optional["BusinessLocation"]] = relationship()
    customer_location: Mapped[Optional["CustomerLocation"]] = relationship()
    status_history: Mapped[List["BookingStatusHistory"]] = relationship(
        back_populates="booking"
    )

    __table_args__ = (
        Index("ix_bookings_customer_id", "customer_id"),
        Index("ix_bookings_business_id", "business_id"),
        Index("ix_bookings_status_date", "booking_status", "booking_date"),
    )


class BookingStatusHistory(Base):
    """Append-only log of booking status transitions."""
    __tablename__ = "booking_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    booking: Mapped["Booking"] = relationship(back_populates="status_history")

    __table_args__ = (Index("ix_booking_status_history_booking_id", "booking_id"),)


# ── Notification Settings ─────────────────────────────────────

@dataclass(frozen=True)
class ChannelPreference:
    """Granular per-type toggles. None means the user never chose."""
    email: Optional[bool]
    sms: Optional[bool]


def _toggle() -> Mapped[Optional[bool]]:
    return mapped_column(Boolean, nullable=True)


class UserNotificationSettings(TimestampMixin, Base):
    """One row per user. Created lazily with defaults."""
    __tablename__ = "user_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)

    # Master toggles
    email_notifications: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True, default=True
    )
    sms_notifications: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True, default=False
    )

    # Override contacts
    notification_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notification_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Quiet hours, "HH:MM"
    quiet_hours_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    quiet_hours_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    quiet_hours_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)

    # Granular toggles
    customer_welcome_email: Mapped[Optional[bool]] = _toggle()
    customer_welcome_sms: Mapped[Optional[bool]] = _toggle()
    customer_booking_accepted_email: Mapped[Optional[bool]] = _toggle()
    customer_booking_accepted_sms: Mapped[Optional[bool]] = _toggle()
    customer_booking_completed_email: Mapped[Optional[bool]] = _toggle()
    customer_booking_completed_sms: Mapped[Optional[bool]] = _toggle()
    customer_booking_reminder_email: Mapped[Optional[bool]] = _toggle()
    customer_booking_reminder_sms: Mapped[Optional[bool]] = _toggle()
    provider_new_booking_email: Mapped[Optional[bool]] = _toggle()
    provider_new_booking_sms: Mapped[Optional[bool]] = _toggle()
    provider_booking_cancelled_email: Mapped[Optional[bool]] = _toggle()
    provider_booking_cancelled_sms: Mapped[Optional[bool]] = _toggle()
    provider_booking_rescheduled_email: Mapped[Optional[bool]] = _toggle()
    provider_booking_rescheduled_sms: Mapped[Optional[bool]] = _toggle()
    admin_business_verification_email: Mapped[Optional[bool]] = _toggle()
    admin_business_verification_sms: Mapped[Optional[bool]] = _toggle()

    def preference_for(self, notification_type: NotificationType) -> ChannelPreference:
        email_col, sms_col = PREFERENCE_COLUMNS[NotificationType(notification_type)]
        return ChannelPreference(
            email=getattr(self, email_col.key),
            sms=getattr(self, sms_col.key),
        )

    def set_preference(
        self,
        notification_type: NotificationType,
        email: Optional[bool] = None,
        sms: Optional[bool] = None,
    ) -> None:
        email_col, sms_col = PREFERENCE_COLUMNS[NotificationType(notification_type)]
        if email is not None:
            setattr(self, email_col.key, email)
        if sms is not None:
            setattr(self, sms_col.key, sms)


_S = UserNotificationSettings

PREFERENCE_COLUMNS: Dict[NotificationType, Tuple] = {
    NotificationType.CUSTOMER_WELCOME: (
        _S.customer_welcome_email, _S.customer_welcome_sms,
    ),
    NotificationType.CUSTOMER_BOOKING_ACCEPTED: (
        _S.customer_booking_accepted_email, _S.customer_booking_accepted_sms,
    ),
    NotificationType.CUSTOMER_BOOKING_COMPLETED: (
        _S.customer_booking_completed_email, _S.customer_booking_completed_sms,
    ),
    NotificationType.CUSTOMER_BOOKING_REMINDER: (
        _S.customer_booking_reminder_email, _S.customer_booking_reminder_sms,
    ),
    NotificationType.PROVIDER_NEW_BOOKING: (
        _S.provider_new_booking_email, _S.provider_new_booking_sms,
    ),
    NotificationType.PROVIDER_BOOKING_CANCELLED: (
        _S.provider_booking_cancelled_email, _S.provider_booking_cancelled_sms,
    ),
    NotificationType.PROVIDER_BOOKING_RESCHEDULED: (
        _S.provider_booking_rescheduled_email, _S.provider_booking_rescheduled_sms,
    ),
    NotificationType.ADMIN_BUSINESS_VERIFICATION: (
        _S.admin_business_verification_email, _S.admin_business_verification_sms,
    ),
}


# ── Templates & Delivery Log ──────────────────────────────────

class NotificationTemplate(TimestampMixin, Base):
    """Managed outside this service. At most one row per template_key."""
    __tablename__ = "notification_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    template_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    email_body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sms_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variables: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def has_email(self) -> bool:
        return bool(self.email_body_html)

    @property
    def has_sms(self) -> bool:
        return bool(self.sms_body)


class NotificationLog(Base):
    """Append-only record of each channel send attempt. Never updated."""
    __tablename__ = "notification_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    recipient_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notification_type: Mapped[str] = mapped_column(String(100), nullable=False)
    channel: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    # "metadata" is reserved on declarative classes
    log_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notification_logs_user_id", "user_id"),
        Index("ix_notification_logs_type_created", "notification_type", "created_at"),
    )
