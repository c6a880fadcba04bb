"""
services/notification/preferences.py
Per-user channel gating: master toggles, per-type toggles, quiet hours,
template content and contact availability.

Nothing here writes a delivery log. A channel that is gated out simply
produces no attempt.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from services.notification.recipients import Recipient
from shared.models.models import (
    ChannelPreference,
    NotificationChannel,
    NotificationTemplate,
    NotificationType,
    UserNotificationSettings,
)

logger = logging.getLogger(__name__)

# Applied when the user has no settings row or left a master toggle unset
DEFAULT_EMAIL_ENABLED = True
DEFAULT_SMS_ENABLED = False


@dataclass(frozen=True)
class Contact:
    email: Optional[str]
    phone: Optional[str]


@dataclass
class ChannelDecision:
    email: bool = False
    sms: bool = False
    skipped: Dict[NotificationChannel, str] = field(default_factory=dict)


async def get_user_settings(
    db: AsyncSession, user_id: Optional[uuid.UUID]
) -> Optional[UserNotificationSettings]:
    if user_id is None:
        return None
    result = await db.execute(
        select(UserNotificationSettings).where(UserNotificationSettings.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_or_create_user_settings(db: AsyncSession, user_id: uuid.UUID) -> UserNotificationSettings:
    user_settings = await get_user_settings(db, user_id)
    if user_settings is None:
        user_settings = UserNotificationSettings(
            user_id=user_id,
            email_notifications=DEFAULT_EMAIL_ENABLED,
            sms_notifications=DEFAULT_SMS_ENABLED,
            quiet_hours_enabled=False,
        )
        db.add(user_settings)
        await db.flush()
        logger.info(f"Created default notification settings for user {user_id}")
    return user_settings


def _local_hhmm(now: Optional[datetime]) -> str:
    if now is None:
        now = datetime.now(settings.notification_tz)
    elif now.tzinfo is not None:
        now = now.astimezone(settings.notification_tz)
    return now.strftime("%H:%M")


def is_quiet_hours(
    user_settings: Optional[UserNotificationSettings], now: Optional[datetime] = None
) -> bool:
    """
    Both bounds are inclusive. A start later than the end wraps past midnight,
    so 22:00-06:00 covers 23:00 and 05:59 but not 06:01.
    """
    if user_settings is None or not user_settings.quiet_hours_enabled:
        return False
    if not user_settings.quiet_hours_start or not user_settings.quiet_hours_end:
        return False

    start = user_settings.quiet_hours_start[:5]
    end = user_settings.quiet_hours_end[:5]
    current = _local_hhmm(now)

    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def resolve_contact(
    recipient: Recipient, user_settings: Optional[UserNotificationSettings]
) -> Contact:
    """Override contacts from settings win over the profile record."""
    email = recipient.email
    phone = recipient.phone
    if user_settings is not None:
        email = (user_settings.notification_email or "").strip() or email
        phone = (user_settings.notification_phone or "").strip() or phone
    return Contact(email=email or None, phone=phone or None)


def _master_enabled(value: Optional[bool], default: bool) -> bool:
    return default if value is None else value


def evaluate_channels(
    user_settings: Optional[UserNotificationSettings],
    notification_type: NotificationType,
    template: Optional[NotificationTemplate],
    contact: Contact,
    now: Optional[datetime] = None,
) -> ChannelDecision:
    if user_settings is not None:
        preference = user_settings.preference_for(notification_type)
        email_master = _master_enabled(user_settings.email_notifications, DEFAULT_EMAIL_ENABLED)
        sms_master = _master_enabled(user_settings.sms_notifications, DEFAULT_SMS_ENABLED)
    else:
        preference = ChannelPreference(email=None, sms=None)
        email_master = DEFAULT_EMAIL_ENABLED
        sms_master = DEFAULT_SMS_ENABLED

    quiet = is_quiet_hours(user_settings, now)
    template_active = template is not None and template.is_active

    checks = {
        NotificationChannel.EMAIL: (
            email_master,
            preference.email,
            template_active and template.has_email,
            contact.email,
        ),
        NotificationChannel.SMS: (
            sms_master,
            preference.sms,
            template_active and template.has_sms,
            contact.phone,
        ),
    }

    decision = ChannelDecision()
    for channel, (master, granular, has_content, address) in checks.items():
        if not master:
            reason = f"{channel.value} notifications disabled"
        elif granular is False:
            reason = f"{channel.value} disabled for {NotificationType(notification_type).value}"
        elif quiet:
            reason = "quiet hours"
        elif not template_active:
            reason = "no active template"
        elif not has_content:
            reason = f"template has no {channel.value} content"
        elif not address:
            reason = f"no {channel.value} contact"
        else:
            setattr(decision, channel.value, True)
            continue
        decision.skipped[channel] = reason
    return decision
