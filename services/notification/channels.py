"""
services/notification/channels.py
Outbound providers: Resend for email, Twilio for SMS.

Both SDKs are blocking, so calls run in the threadpool. Senders return the
provider's message id and raise DeliveryError on anything else.
"""

import re
from typing import Optional

import resend
from fastapi.concurrency import run_in_threadpool
from twilio.rest import Client

from config.settings import settings
from shared.utils.errors import DeliveryError


def format_phone_number(phone: str) -> str:
    """Normalize to E.164. Bare 10-digit numbers are treated as US/CA."""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10 and not phone.startswith("+"):
        return f"+1{digits}"
    return f"+{digits}"


def _resend_send(params: dict) -> str:
    resend.api_key = settings.RESEND_API_KEY
    response = resend.Emails.send(params)
    message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    if not message_id:
        raise DeliveryError("Email provider returned no message id")
    return message_id


async def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> str:
    if not settings.RESEND_API_KEY:
        raise DeliveryError("Email delivery is not configured (RESEND_API_KEY missing)")

    params = {
        "from": settings.email_sender,
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if text:
        params["text"] = text
    return await run_in_threadpool(_resend_send, params)


def _twilio_send(to: str, body: str) -> str:
    client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    message = client.messages.create(
        body=body,
        from_=settings.TWILIO_FROM_NUMBER,
        to=to,
    )
    return message.sid


async def send_sms(to: str, body: str) -> str:
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER):
        raise DeliveryError("SMS delivery is not configured (Twilio credentials missing)")
    return await run_in_threadpool(_twilio_send, format_phone_number(to), body)
