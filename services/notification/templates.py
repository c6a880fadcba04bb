"""
services/notification/templates.py
Template lookup and {{variable}} rendering.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import NotificationTemplate, NotificationType

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True)
class RenderedTemplate:
    subject: Optional[str]
    html: Optional[str]
    text: Optional[str]
    sms: Optional[str]


async def get_active_template(
    db: AsyncSession, notification_type: NotificationType
) -> Optional[NotificationTemplate]:
    result = await db.execute(
        select(NotificationTemplate).where(
            NotificationTemplate.template_key == NotificationType(notification_type).value,
            NotificationTemplate.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


def render(text: Optional[str], variables: Mapping[str, Any]) -> Optional[str]:
    """
    Replace every {{key}} with str(variables[key]) in a single pass.
    Unknown keys stay as literal text; None renders as an empty string.
    Substituted values are never re-scanned, so rendering is deterministic.
    """
    if text is None:
        return None

    def _substitute(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return PLACEHOLDER.sub(_substitute, text)


def render_template(template: NotificationTemplate, variables: Mapping[str, Any]) -> RenderedTemplate:
    return RenderedTemplate(
        subject=render(template.email_subject or "", variables),
        html=render(template.email_body_html, variables),
        text=render(template.email_body_text, variables),
        sms=render(template.sms_body, variables),
    )
