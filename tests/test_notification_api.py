"""
tests/test_notification_api.py
Tests for direct sends and the notification settings endpoints.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from shared.models.models import NotificationType, UserNotificationSettings
from tests.factories import make_customer, make_template, persist


# ── Direct Send ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_to_customer(client: AsyncClient, db, outbox):
    """Unknown placeholders are sent verbatim rather than failing the send."""
    customer = await persist(db, make_customer())
    await persist(db, make_template(NotificationType.CUSTOMER_WELCOME))

    response = await client.post(
        "/notifications/send",
        json={
            "userId": str(customer.user_id),
            "notificationType": "customer_welcome",
            "templateVariables": {"customer_name": "Ava"},
            "metadata": {"source": "signup"},
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["notification_type"] == "customer_welcome"
    assert data["attempts"] == [{"channel": "email", "status": "sent", "message_id": "email_1", "error": None}]
    assert outbox.emails[0]["subject"] == "[customer_welcome] {{service_name}} on {{booking_date}}"


@pytest.mark.asyncio
async def test_send_rejects_unknown_type(client: AsyncClient):
    response = await client.post(
        "/notifications/send",
        json={"userId": str(uuid.uuid4()), "notificationType": "push_blast", "templateVariables": {}},
    )
    assert response.status_code == 400
    assert "customer_booking_accepted" in response.json()["details"]["validTypes"]


@pytest.mark.asyncio
async def test_send_requires_fields(client: AsyncClient):
    response = await client.post("/notifications/send", json={"notificationType": "customer_welcome"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_rejects_non_object_variables(client: AsyncClient):
    response = await client.post(
        "/notifications/send",
        json={"userId": str(uuid.uuid4()), "notificationType": "customer_welcome", "templateVariables": ["a"]},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_send_unknown_user_is_404(client: AsyncClient):
    response = await client.post(
        "/notifications/send",
        json={"userId": str(uuid.uuid4()), "notificationType": "customer_welcome", "templateVariables": {}},
    )
    assert response.status_code == 404


# ── Settings ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_settings_creates_defaults(client: AsyncClient, session_factory):
    user_id = uuid.uuid4()

    response = await client.get(f"/notifications/settings/{user_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["email_notifications"] is True
    assert data["sms_notifications"] is False
    assert data["quiet_hours_enabled"] is False
    assert set(data["preferences"]) == {t.value for t in NotificationType}
    assert data["preferences"]["customer_booking_accepted"] == {"email": None, "sms": None}

    async with session_factory() as session:
        rows = (await session.execute(
            select(UserNotificationSettings).where(UserNotificationSettings.user_id == user_id)
        )).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_update_settings(client: AsyncClient):
    user_id = uuid.uuid4()

    response = await client.put(
        f"/notifications/settings/{user_id}",
        json={
            "quiet_hours_enabled": True,
            "quiet_hours_start": "22:00",
            "quiet_hours_end": "06:00",
            "notification_email": "alt@example.com",
            "preferences": {"customer_booking_accepted": {"email": False}},
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["quiet_hours_enabled"] is True
    assert data["quiet_hours_start"] == "22:00"
    assert data["notification_email"] == "alt@example.com"
    assert data["preferences"]["customer_booking_accepted"] == {"email": False, "sms": None}

    again = await client.get(f"/notifications/settings/{user_id}")
    assert again.json()["preferences"]["customer_booking_accepted"]["email"] is False


@pytest.mark.asyncio
async def test_update_settings_rejects_bad_quiet_hours(client: AsyncClient):
    response = await client.put(
        f"/notifications/settings/{uuid.uuid4()}", json={"quiet_hours_start": "25:00"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_opted_out_send_makes_no_attempts(client: AsyncClient, db, outbox):
    customer = await persist(db, make_customer())
    await persist(db, make_template(NotificationType.CUSTOMER_WELCOME))
    await client.put(
        f"/notifications/settings/{customer.user_id}",
        json={"preferences": {"customer_welcome": {"email": False}}},
    )

    response = await client.post(
        "/notifications/send",
        json={"userId": str(customer.user_id), "notificationType": "customer_welcome", "templateVariables": {}},
    )

    assert response.status_code == 200
    assert response.json()["attempts"] == []
    assert outbox.emails == []
