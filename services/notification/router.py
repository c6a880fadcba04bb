"""
services/notification/router.py
Direct sends by notification type, and per-user notification settings.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.database import get_db, get_session_factory
from services.notification.dispatcher import send_notification
from services.notification.preferences import get_or_create_user_settings
from services.notification.recipients import recipient_for_user
from shared.models.models import (
    DeliveryStatus,
    NotificationType,
    UserNotificationSettings,
)
from shared.schemas.schemas import (
    ChannelPreferenceSchema,
    DeliveryAttemptResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdateRequest,
    SendNotificationRequest,
    SendNotificationResponse,
)
from shared.utils.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/notifications", tags=["Notifications"])

VALID_TYPES = [t.value for t in NotificationType]


# ── Helpers ───────────────────────────────────────────────────

def _settings_response(user_settings: UserNotificationSettings) -> NotificationSettingsResponse:
    preferences = {}
    for notification_type in NotificationType:
        preference = user_settings.preference_for(notification_type)
        preferences[notification_type.value] = ChannelPreferenceSchema(
            email=preference.email, sms=preference.sms
        )
    return NotificationSettingsResponse(
        user_id=user_settings.user_id,
        email_notifications=user_settings.email_notifications,
        sms_notifications=user_settings.sms_notifications,
        notification_email=user_settings.notification_email,
        notification_phone=user_settings.notification_phone,
        quiet_hours_enabled=user_settings.quiet_hours_enabled,
        quiet_hours_start=user_settings.quiet_hours_start,
        quiet_hours_end=user_settings.quiet_hours_end,
        preferences=preferences,
    )


def _parse_send_request(data: SendNotificationRequest):
    if not data.user_id or not data.notification_type or data.template_variables is None:
        raise ValidationError(
            "Missing required fields: userId, notificationType, templateVariables"
        )
    try:
        user_id = uuid.UUID(data.user_id)
    except ValueError:
        raise ValidationError("userId must be a valid UUID", details={"userId": data.user_id})
    if data.notification_type not in VALID_TYPES:
        raise ValidationError(
            f"Invalid notification type: {data.notification_type}",
            details={"validTypes": VALID_TYPES},
        )
    if not isinstance(data.template_variables, dict):
        raise ValidationError("templateVariables must be an object")
    return user_id, NotificationType(data.notification_type)


# ── Routes ────────────────────────────────────────────────────

@router.post("/send", response_model=SendNotificationResponse)
async def send(
    data: SendNotificationRequest,
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Send one notification type to one user through every eligible channel."""
    user_id, notification_type = _parse_send_request(data)

    recipient = await recipient_for_user(db, user_id)
    if recipient is None:
        raise NotFoundError("User not found", details={"userId": str(user_id)})

    attempts = await send_notification(
        session_factory,
        recipient,
        notification_type,
        data.template_variables,
        metadata=data.metadata,
    )
    return SendNotificationResponse(
        success=all(a.status == DeliveryStatus.SENT for a in attempts),
        notification_type=notification_type.value,
        attempts=[
            DeliveryAttemptResponse(
                channel=a.channel.value,
                status=a.status.value,
                message_id=a.message_id,
                error=a.error,
            )
            for a in attempts
        ],
    )


@router.get("/settings/{user_id}", response_model=NotificationSettingsResponse)
async def get_settings(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Return the user's settings, creating the default row on first read."""
    user_settings = await get_or_create_user_settings(db, user_id)
    await db.commit()
    return _settings_response(user_settings)


@router.put("/settings/{user_id}", response_model=NotificationSettingsResponse)
async def update_settings(
    user_id: uuid.UUID,
    data: NotificationSettingsUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    user_settings = await get_or_create_user_settings(db, user_id)

    updates = data.model_dump(exclude_unset=True, exclude={"preferences"})
    for field, value in updates.items():
        if field == "quiet_hours_enabled" and value is None:
            continue
        setattr(user_settings, field, value)

    for notification_type, preference in (data.preferences or {}).items():
        user_settings.set_preference(notification_type, email=preference.email, sms=preference.sms)

    await db.commit()
    return _settings_response(user_settings)
