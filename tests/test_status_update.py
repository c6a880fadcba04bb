"""
tests/test_status_update.py
Tests for POST /bookings/status-update: validation, persistence, and the
notifications fanned out after the response is returned.
"""

import uuid
from collections import Counter
from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.models import (
    Booking,
    BookingStatusHistory,
    NotificationLog,
    ProviderRole,
)
from shared.utils.background import dispatch_tracker
from tests.factories import (
    make_booking,
    make_business,
    make_customer,
    make_provider,
    make_settings,
    persist,
    seed_templates,
)

URL = "/bookings/status-update"


def _payload(booking_id, status, **kwargs):
    body = {"bookingId": str(booking_id), "newStatus": status, "updatedBy": "provider-123"}
    body.update(kwargs)
    return body


async def _logs(session_factory):
    await dispatch_tracker.drain(timeout=5)
    async with session_factory() as session:
        result = await session.execute(select(NotificationLog))
        return result.scalars().all()


async def _stored_status(session_factory, booking_id):
    async with session_factory() as session:
        return (await session.get(Booking, booking_id)).booking_status


# ── Validation ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_missing_fields_rejected(client: AsyncClient):
    """A request without updatedBy is a 400 listing which fields were present."""
    response = await client.post(URL, json={"bookingId": str(uuid.uuid4()), "newStatus": "confirmed"})

    assert response.status_code == 400
    data = response.json()
    assert "Missing required fields" in data["detail"]
    assert data["details"] == {"bookingId": True, "newStatus": True, "updatedBy": False}


@pytest.mark.asyncio
async def test_malformed_booking_id_rejected(client: AsyncClient):
    response = await client.post(URL, json=_payload("not-a-uuid", "confirmed"))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_booking_is_404(client: AsyncClient):
    response = await client.post(URL, json=_payload(uuid.uuid4(), "confirmed"))
    assert response.status_code == 404
    assert response.json()["detail"] == "Booking not found"


# ── Persistence ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_persisted_and_booking_returned(client, db, session_factory, outbox):
    customer = make_customer()
    booking = await persist(db, make_booking(customer=customer))

    response = await client.post(URL, json=_payload(booking.id, "confirmed"))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["timestamp"]
    assert data["booking"]["id"] == str(booking.id)
    assert data["booking"]["booking_status"] == "confirmed"
    assert data["booking"]["customer"]["email"] == "ava@example.com"
    assert data["booking"]["service"]["name"] == "Deep Tissue Massage"
    assert data["booking"]["provider"] is None
    assert await _stored_status(session_factory, booking.id) == "confirmed"


@pytest.mark.asyncio
async def test_any_status_string_is_accepted(client, db, session_factory, outbox):
    """The receiver does not validate the status against a known set."""
    booking = await persist(db, make_booking(customer=make_customer()))

    response = await client.post(URL, json=_payload(booking.id, "awaiting_payment"))

    assert response.status_code == 200
    assert await _stored_status(session_factory, booking.id) == "awaiting_payment"


@pytest.mark.asyncio
async def test_status_history_recorded(client, db, session_factory, outbox):
    booking = await persist(db, make_booking(customer=make_customer()))

    await client.post(URL, json=_payload(booking.id, "cancelled", reason="Client sick"))

    async with session_factory() as session:
        history = (await session.execute(select(BookingStatusHistory))).scalars().all()
    assert len(history) == 1
    assert history[0].booking_id == booking.id
    assert history[0].status == "cancelled"
    assert history[0].changed_by == "provider-123"
    assert history[0].reason == "Client sick"


@pytest.mark.asyncio
async def test_store_failure_is_500_and_nothing_dispatched(client, db, session_factory, outbox, monkeypatch):
    """A failed commit surfaces the store's message and spawns no notifications."""
    await seed_templates(db)
    booking = await persist(db, make_booking(customer=make_customer()))

    async def _failing_commit(self):
        raise OperationalError("UPDATE bookings", {}, Exception("db down"))

    with monkeypatch.context() as m:
        m.setattr(AsyncSession, "commit", _failing_commit)
        response = await client.post(URL, json=_payload(booking.id, "confirmed"))

    assert response.status_code == 500
    data = response.json()
    assert data["detail"] == "Failed to update booking"
    assert "db down" in data["details"]
    assert dispatch_tracker.in_flight == 0

    assert outbox.emails == []
    assert await _stored_status(session_factory, booking.id) == "pending"


@pytest.mark.asyncio
async def test_status_persisted_even_when_provider_fails(client, db, session_factory, outbox):
    await seed_templates(db)
    booking = await persist(db, make_booking(customer=make_customer()))
    outbox.failing.add("ava@example.com")

    response = await client.post(URL, json=_payload(booking.id, "confirmed"))

    assert response.status_code == 200
    logs = await _logs(session_factory)
    assert [log.status for log in logs] == ["failed"]
    assert await _stored_status(session_factory, booking.id) == "confirmed"


# ── Fan-out Scenarios ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_confirmed_booking_emails_customer(client, db, session_factory, outbox):
    """Confirmed + default settings: exactly one sent email to the customer."""
    await seed_templates(db)
    customer = make_customer()
    booking = await persist(db, make_booking(customer=customer))

    response = await client.post(URL, json=_payload(booking.id, "confirmed"))
    assert response.status_code == 200

    logs = await _logs(session_factory)
    assert len(logs) == 1
    log = logs[0]
    assert log.status == "sent"
    assert log.channel == "email"
    assert log.notification_type == "customer_booking_accepted"
    assert log.recipient_email == "ava@example.com"
    assert log.user_id == customer.user_id
    assert log.log_metadata["booking_id"] == str(booking.id)
    assert log.log_metadata["event_type"] == "booking_confirmed"
    assert "Monday, January 6, 2025" in outbox.emails[0]["html"]
    assert "2:30 PM" in outbox.emails[0]["html"]


@pytest.mark.asyncio
async def test_customer_opted_out_of_type_gets_nothing(client, db, session_factory, outbox):
    await seed_templates(db)
    customer = make_customer()
    booking, _ = await persist(
        db,
        make_booking(customer=customer),
        make_settings(customer.user_id, customer_booking_accepted_email=False),
    )

    response = await client.post(URL, json=_payload(booking.id, "confirmed"))

    assert response.status_code == 200
    assert await _logs(session_factory) == []
    assert outbox.emails == []


@pytest.mark.asyncio
async def test_quiet_hours_suppress_all_logs(client, db, session_factory, outbox):
    await seed_templates(db)
    customer = make_customer()
    booking, _ = await persist(
        db,
        make_booking(customer=customer),
        make_settings(customer.user_id, quiet_hours_enabled=True, quiet_hours_start="00:00", quiet_hours_end="23:59"),
    )

    await client.post(URL, json=_payload(booking.id, "completed"))

    assert await _logs(session_factory) == []


@pytest.mark.asyncio
async def test_cancellation_notifies_every_business_recipient(client, db, session_factory, outbox):
    """Owners O1, O2, dispatcher D1 and assigned provider P1 are each attempted."""
    await seed_templates(db)
    business = make_business()
    o1 = make_provider(business, ProviderRole.OWNER)
    o2 = make_provider(business, ProviderRole.OWNER)
    d1 = make_provider(business, ProviderRole.DISPATCHER)
    p1 = make_provider(business, ProviderRole.PROVIDER)
    booking = make_booking(customer=make_customer(), provider=p1, business=business)
    await persist(db, o1, o2, d1, p1, booking)

    response = await client.post(URL, json=_payload(booking.id, "cancelled", reason="Provider unavailable"))
    assert response.status_code == 200

    logs = await _logs(session_factory)
    assert len(logs) == 4
    assert {log.notification_type for log in logs} == {"provider_booking_cancelled"}
    assert {log.recipient_email for log in logs} == {o1.email, o2.email, d1.email, p1.email}
    roles = Counter(log.log_metadata["provider_role"] for log in logs)
    assert roles == {"owner": 2, "dispatcher": 1, "provider": 1}
    assigned = [log.log_metadata["provider_id"] for log in logs if log.log_metadata["assigned"]]
    assert assigned == [str(p1.id)]


@pytest.mark.asyncio
async def test_one_failing_business_recipient_does_not_stop_others(client, db, session_factory, outbox):
    await seed_templates(db)
    business = make_business()
    owner = make_provider(business, ProviderRole.OWNER)
    dispatcher = make_provider(business, ProviderRole.DISPATCHER)
    booking = make_booking(customer=make_customer(), business=business)
    await persist(db, owner, dispatcher, booking)
    outbox.failing.add(owner.email)

    await client.post(URL, json=_payload(booking.id, "cancelled"))

    statuses = {log.recipient_email: log.status for log in await _logs(session_factory)}
    assert statuses == {owner.email: "failed", dispatcher.email: "sent"}


@pytest.mark.asyncio
async def test_reschedule_and_status_rules_both_fire(client, db, session_factory, outbox):
    """A detected reschedule notifies the business alongside the status rule."""
    await seed_templates(db)
    business = make_business()
    owner = make_provider(business, ProviderRole.OWNER)
    booking = make_booking(
        customer=make_customer(),
        business=business,
        original_booking_date=date(2025, 1, 3),
    )
    await persist(db, owner, booking)

    await client.post(URL, json=_payload(booking.id, "confirmed"))

    logs = await _logs(session_factory)
    by_type = Counter(log.notification_type for log in logs)
    assert by_type == {"customer_booking_accepted": 1, "provider_booking_rescheduled": 1}
    rescheduled = next(log for log in logs if log.notification_type == "provider_booking_rescheduled")
    assert rescheduled.recipient_email == owner.email
    assert rescheduled.log_metadata["event_type"] == "booking_rescheduled"


@pytest.mark.asyncio
async def test_notify_flags_off_skip_dispatch(client, db, session_factory, outbox):
    await seed_templates(db)
    booking = await persist(db, make_booking(customer=make_customer()))

    response = await client.post(
        URL, json=_payload(booking.id, "confirmed", notifyCustomer=False, notifyProvider=False)
    )

    assert response.status_code == 200
    assert dispatch_tracker.in_flight == 0
    assert await _logs(session_factory) == []


@pytest.mark.asyncio
async def test_booking_without_parties_is_skipped(client, db, session_factory, outbox):
    await seed_templates(db)
    booking = await persist(db, make_booking())

    response = await client.post(URL, json=_payload(booking.id, "confirmed"))

    assert response.status_code == 200
    assert await _logs(session_factory) == []
