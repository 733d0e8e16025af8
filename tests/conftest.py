"""
Pytest fixtures for test database, client, fake collaborators and auth.

Each test gets a fresh in-memory SQLite database. Requests run in their own
session, just like production; fixtures create rows in short-lived sessions
of their own.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("PAYMENT_GATEWAY", "manual")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.exceptions import ExternalGatewayError
from app.core.security import create_access_token, get_password_hash
from app.database import Base, get_db
from app.gateways.base import CheckoutSession, RefundResult
from app.gateways.manual import ManualGateway
from app.main import app
from app.models.activity import Activity
from app.models.booking import Booking
from app.models.user import User, utcnow
from app.services.gateway_service import get_payment_gateway
from app.services.notification_service import NotificationService, get_notification_service

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_WEBHOOK_SECRET = "test-webhook-secret"
TEST_PASSWORD = "Password123"


class FakeGateway(ManualGateway):
    """Records gateway calls; webhooks are verified like the manual gateway."""

    def __init__(self) -> None:
        super().__init__(webhook_secret=TEST_WEBHOOK_SECRET)
        self.sessions: list[dict] = []
        self.expired: list[str] = []
        self.refunds: list[dict] = []
        self.fail_with: Exception | None = None
        self.delay: float = 0
        self.expire_fails = False
        self.on_create: Callable[[], None] | None = None

    async def create_checkout_session(
        self,
        amount,
        currency,
        description,
        success_url,
        cancel_url,
        metadata=None,
    ) -> CheckoutSession:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with
        if self.on_create:
            self.on_create()

        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append(
            {
                "session_id": session_id,
                "amount": amount,
                "currency": currency,
                "description": description,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
            }
        )
        return CheckoutSession(session_id=session_id, redirect_url=f"https://checkout.test/{session_id}")

    async def expire_checkout_session(self, session_id: str) -> None:
        if self.expire_fails:
            raise ExternalGatewayError("fake", "expire failed", retryable=False)
        self.expired.append(session_id)

    async def request_refund(self, session_id: str, amount: int, reason: str) -> RefundResult:
        self.refunds.append({"session_id": session_id, "amount": amount, "reason": reason})
        return RefundResult(success=True, refund_id=f"re_{session_id}")

    def signed(self, event: dict) -> tuple[bytes, dict]:
        """Body and headers for a webhook delivery of ``event``."""
        payload = json.dumps(event).encode()
        return payload, {
            "Content-Type": "application/json",
            "X-Payment-Signature": self.sign_payload(payload),
        }


class FakeNotifier(NotificationService):
    """Collects confirmations instead of emailing them."""

    def __init__(self) -> None:
        super().__init__(api_key=None)
        self.sent: list[dict] = []
        self.fail = False

    async def send_booking_confirmation(self, booking, activity, email) -> bool:
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append({"booking_id": booking.id, "activity_id": activity.id, "email": email})
        return True


def checkout_event(
    booking_id,
    session_id: str,
    event_type: str = "checkout.session.completed",
) -> dict:
    return {
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "payment_status": "paid",
                "metadata": {"bookingId": str(booking_id)},
            }
        },
    }


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_gateway: FakeGateway,
    notifier: FakeNotifier,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the database and collaborators overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_notification_service] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(session_factory):
    """Factory creating users."""

    async def _make_user(email: str | None = None, role: str = "user") -> User:
        async with session_factory() as session:
            user = User(
                email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
                password_hash=get_password_hash(TEST_PASSWORD),
                role=role,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    return await make_user("test@example.com")


@pytest_asyncio.fixture
async def other_user(make_user) -> User:
    return await make_user("other@example.com")


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user("admin@example.com", role="admin")


def headers_for(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return headers_for(test_user)


@pytest.fixture
def other_headers(other_user: User) -> dict:
    return headers_for(other_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


@pytest_asyncio.fixture
async def make_activity(session_factory, admin_user):
    """Factory creating activities owned by the admin user."""

    async def _make_activity(
        max_attendees: int = 10,
        price: str = "20.00",
        starts_in: timedelta = timedelta(days=7),
        location: str = "Central Park",
        date: datetime | None = None,
    ) -> Activity:
        async with session_factory() as session:
            activity = Activity(
                name="Sunrise Yoga",
                description="Outdoor yoga session",
                date=date or utcnow() + starts_in,
                location=location,
                price=Decimal(price),
                max_attendees=max_attendees,
                created_by=admin_user.id,
                attendees=[],
            )
            session.add(activity)
            await session.commit()
            return activity

    return _make_activity


@pytest_asyncio.fixture
async def test_activity(make_activity) -> Activity:
    return await make_activity()


@pytest_asyncio.fixture
async def load_booking(session_factory):
    """Read a booking's current row in a fresh session."""

    async def _load(booking_id) -> Booking | None:
        async with session_factory() as session:
            return await session.get(Booking, uuid.UUID(str(booking_id)))

    return _load


@pytest_asyncio.fixture
async def make_booking(session_factory):
    """Factory inserting bookings directly, bypassing checkout."""

    async def _make_booking(
        user: User,
        activity: Activity,
        status: str = "pending",
        payment_status: str = "pending",
        payment_id: str | None = None,
    ) -> Booking:
        async with session_factory() as session:
            booking = Booking(
                user_id=user.id,
                activity_id=activity.id,
                date=activity.date,
                total_amount=activity.price,
                currency="usd",
                status=status,
                payment_status=payment_status,
                is_confirmed=status == "confirmed",
                payment_id=payment_id or f"cs_seed_{uuid.uuid4().hex[:12]}",
                confirmed_at=utcnow() if status == "confirmed" else None,
            )
            session.add(booking)
            await session.commit()
            return booking

    return _make_booking


@pytest.fixture
def make_event():
    """Checkout webhook event builder."""
    return checkout_event


@pytest.fixture
def test_password() -> str:
    return TEST_PASSWORD
