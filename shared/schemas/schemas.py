"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the service.

Booking payloads are normalized here: every to-one relation is a single
optional object, never a list.
"""

import re
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.models.models import NotificationType

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CamelRequest(BaseModel):
    """Inbound bodies use camelCase keys; snake_case is accepted too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(BaseSchema):
    message: str
    success: bool = True


# ── Booking ───────────────────────────────────────────────────

class CustomerSummary(BaseSchema):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class ProviderSummary(BaseSchema):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    business_id: Optional[uuid.UUID] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    provider_role: str = "provider"
    is_active: bool = True


class BusinessSummary(BaseSchema):
    id: uuid.UUID
    business_name: str
    contact_email: Optional[str] = None
    phone: Optional[str] = None


class ServiceSummary(BaseSchema):
    id: uuid.UUID
    name: str


class LocationSummary(BaseSchema):
    id: uuid.UUID
    location_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class BookingDetail(BaseSchema):
    """A booking joined with every party the notification pipeline needs."""
    id: uuid.UUID
    booking_reference: Optional[str] = None
    booking_status: str
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    original_booking_date: Optional[date] = None
    original_start_time: Optional[time] = None
    reschedule_reason: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    total_amount: Optional[Decimal] = None
    special_instructions: Optional[str] = None

    customer_id: Optional[uuid.UUID] = None
    provider_id: Optional[uuid.UUID] = None
    business_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None

    customer: Optional[CustomerSummary] = None
    provider: Optional[ProviderSummary] = None
    business: Optional[BusinessSummary] = None
    service: Optional[ServiceSummary] = None
    business_location: Optional[LocationSummary] = None
    customer_location: Optional[LocationSummary] = None


class StatusUpdateRequest(CamelRequest):
    # Required fields are checked by the service so that a missing one is a 400
    booking_id: Optional[str] = None
    new_status: Optional[str] = None
    updated_by: Optional[str] = None
    reason: Optional[str] = None
    notify_customer: bool = True
    notify_provider: bool = True


class StatusUpdateResponse(BaseSchema):
    success: bool = True
    booking: BookingDetail
    timestamp: datetime


# ── Notifications ─────────────────────────────────────────────

class SendNotificationRequest(CamelRequest):
    user_id: Optional[str] = None
    notification_type: Optional[str] = None
    template_variables: Any = None
    metadata: Optional[Dict[str, Any]] = None


class DeliveryAttemptResponse(BaseSchema):
    channel: str
    status: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class SendNotificationResponse(BaseSchema):
    success: bool
    notification_type: str
    attempts: List[DeliveryAttemptResponse] = []


class ChannelPreferenceSchema(BaseSchema):
    email: Optional[bool] = None
    sms: Optional[bool] = None


class NotificationSettingsResponse(BaseSchema):
    user_id: uuid.UUID
    email_notifications: Optional[bool]
    sms_notifications: Optional[bool]
    notification_email: Optional[str]
    notification_phone: Optional[str]
    quiet_hours_enabled: bool
    quiet_hours_start: Optional[str]
    quiet_hours_end: Optional[str]
    preferences: Dict[str, ChannelPreferenceSchema]


class NotificationSettingsUpdateRequest(BaseSchema):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    notification_email: Optional[str] = Field(None, max_length=255)
    notification_phone: Optional[str] = Field(None, max_length=20)
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    preferences: Optional[Dict[NotificationType, ChannelPreferenceSchema]] = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def validate_hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not HHMM_PATTERN.match(v):
            raise ValueError("Quiet hours must be formatted as HH:MM (24-hour)")
        return v
