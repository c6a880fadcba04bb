"""
tests/conftest.py
Shared fixtures: a throwaway SQLite database per test, the app wired to it,
and fake email/SMS providers that record what would have been sent.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.database import Base, get_db, get_session_factory
from main import app
from services.notification import channels
from shared.utils.background import dispatch_tracker
from shared.utils.errors import DeliveryError


# ── Database ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ── App ───────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await dispatch_tracker.drain(timeout=5)
    app.dependency_overrides.clear()


# ── Outbound providers ────────────────────────────────────────

class FakeOutbox:
    """Stands in for Resend and Twilio. Addresses in `failing` raise."""

    def __init__(self):
        self.emails = []
        self.sms = []
        self.failing = set()

    async def send_email(self, to, subject, html, text=None):
        if to in self.failing:
            raise DeliveryError(f"Provider rejected {to}")
        self.emails.append({"to": to, "subject": subject, "html": html, "text": text})
        return f"email_{len(self.emails)}"

    async def send_sms(self, to, body):
        if to in self.failing:
            raise DeliveryError(f"Provider rejected {to}")
        self.sms.append({"to": to, "body": body})
        return f"SM{len(self.sms):04d}"

    @property
    def email_recipients(self):
        return [e["to"] for e in self.emails]


@pytest.fixture
def outbox(monkeypatch):
    box = FakeOutbox()
    monkeypatch.setattr(channels, "send_email", box.send_email)
    monkeypatch.setattr(channels, "send_sms", box.send_sms)
    return box
