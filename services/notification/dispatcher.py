"""
services/notification/dispatcher.py
Render a template for one recipient, send it over every eligible channel,
and record one notification_logs row per attempted send.

Delivery is best-effort and at-most-once: a failed send is logged as
`failed` and never retried. Gated-out channels leave no log row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import settings
from services.notification import channels
from services.notification.preferences import evaluate_channels, get_user_settings, resolve_contact
from services.notification.recipients import Recipient
from services.notification.templates import RenderedTemplate, get_active_template, render_template
from shared.models.models import (
    DeliveryStatus,
    NotificationChannel,
    NotificationLog,
    NotificationType,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryAttempt:
    channel: NotificationChannel
    status: DeliveryStatus
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


async def send_notification(
    session_factory: async_sessionmaker,
    recipient: Recipient,
    notification_type: NotificationType,
    variables: Mapping[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> List[DeliveryAttempt]:
    """
    Gate, render and send one notification type to one recipient.
    Returns the attempts made; an empty list means nothing was eligible.
    """
    notification_type = NotificationType(notification_type)

    async with session_factory() as db:
        template = await get_active_template(db, notification_type)
        if template is None:
            logger.warning(f"No active template for {notification_type.value}, skipping")
            return []
        user_settings = await get_user_settings(db, recipient.user_id)

    contact = resolve_contact(recipient, user_settings)
    decision = evaluate_channels(user_settings, notification_type, template, contact, now)
    for channel, reason in decision.skipped.items():
        logger.info(
            f"{notification_type.value} {channel.value} skipped for "
            f"{recipient.role.value} {recipient.user_id}: {reason}"
        )

    rendered = render_template(template, variables)
    attempts: List[DeliveryAttempt] = []

    if decision.email:
        attempts.append(
            await _deliver_email(session_factory, recipient, notification_type, contact.email, rendered, metadata)
        )

    if decision.sms:
        if settings.SMS_DELIVERY_ENABLED:
            attempts.append(
                await _deliver_sms(session_factory, recipient, notification_type, contact.phone, rendered, metadata)
            )
        else:
            logger.info(
                f"{notification_type.value} SMS eligible for {recipient.user_id} "
                f"but SMS delivery is not enabled"
            )

    return attempts


async def _deliver_email(
    session_factory: async_sessionmaker,
    recipient: Recipient,
    notification_type: NotificationType,
    to: str,
    rendered: RenderedTemplate,
    metadata: Optional[Dict[str, Any]],
) -> DeliveryAttempt:
    try:
        message_id = await channels.send_email(to, rendered.subject, rendered.html, rendered.text)
        attempt = DeliveryAttempt(NotificationChannel.EMAIL, DeliveryStatus.SENT, to, message_id=message_id)
        logger.info(f"{notification_type.value} email sent to {to} ({message_id})")
    except Exception as e:
        attempt = DeliveryAttempt(NotificationChannel.EMAIL, DeliveryStatus.FAILED, to, error=str(e))
        logger.warning(f"{notification_type.value} email to {to} failed: {e}")

    await _record_delivery(
        session_factory,
        recipient,
        notification_type,
        attempt,
        recipient_email=to,
        subject=rendered.subject,
        body=rendered.html,
        metadata=metadata,
    )
    return attempt


async def _deliver_sms(
    session_factory: async_sessionmaker,
    recipient: Recipient,
    notification_type: NotificationType,
    to: str,
    rendered: RenderedTemplate,
    metadata: Optional[Dict[str, Any]],
) -> DeliveryAttempt:
    try:
        sid = await channels.send_sms(to, rendered.sms)
        attempt = DeliveryAttempt(NotificationChannel.SMS, DeliveryStatus.SENT, to, message_id=sid)
        logger.info(f"{notification_type.value} SMS sent to {to} ({sid})")
    except Exception as e:
        attempt = DeliveryAttempt(NotificationChannel.SMS, DeliveryStatus.FAILED, to, error=str(e))
        logger.warning(f"{notification_type.value} SMS to {to} failed: {e}")

    await _record_delivery(
        session_factory,
        recipient,
        notification_type,
        attempt,
        recipient_phone=to,
        body=rendered.sms,
        metadata=metadata,
    )
    return attempt


async def _record_delivery(
    session_factory: async_sessionmaker,
    recipient: Recipient,
    notification_type: NotificationType,
    attempt: DeliveryAttempt,
    recipient_email: Optional[str] = None,
    recipient_phone: Optional[str] = None,
    subject: Optional[str] = None,
    body: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Append the attempt to notification_logs. A failure here is logged, never raised."""
    try:
        async with session_factory() as db:
            db.add(
                NotificationLog(
                    user_id=recipient.user_id,
                    recipient_email=recipient_email,
                    recipient_phone=recipient_phone,
                    notification_type=notification_type.value,
                    channel=attempt.channel.value,
                    status=attempt.status.value,
                    provider_message_id=attempt.message_id,
                    subject=subject,
                    body=body,
                    error_message=attempt.error,
                    sent_at=datetime.now(timezone.utc) if attempt.ok else None,
                    log_metadata={**(metadata or {}), "recipient_role": recipient.role.value},
                )
            )
            await db.commit()
    except Exception:
        logger.exception(
            f"Failed to record {attempt.channel.value} delivery log for {notification_type.value}"
        )
