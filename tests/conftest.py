"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Every test gets a fresh engine; a
``StaticPool`` keeps the single in-memory connection alive across sessions.
The payment processor and the pub/sub publisher are replaced by in-memory
fakes through FastAPI dependency overrides.
"""

import os

os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from carpool.domain.errors import ExternalServiceError
from carpool.infrastructure.database import Base
from carpool.infrastructure.payments import (
    PaymentGateway,
    PaymentIntent,
    PaymentReceipt,
    to_minor_units,
)
from carpool.infrastructure.pubsub import Publisher

TEST_DB_URL = "sqlite+aiosqlite://"

# Downtown Pittsburgh -> Pittsburgh International Airport
DOWNTOWN = (40.4406, -79.9959)
AIRPORT = (40.4915, -80.2329)


def in_hours(hours: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def ride_payload(**overrides: Any) -> dict[str, Any]:
    body = {
        "start_lat": DOWNTOWN[0],
        "start_lng": DOWNTOWN[1],
        "start_address": "Market Square, Pittsburgh",
        "end_lat": AIRPORT[0],
        "end_lng": AIRPORT[1],
        "end_address": "Pittsburgh International Airport",
        "departure_time": in_hours(24).isoformat(),
        "available_seats": 3,
        "price_per_seat": 15.0,
    }
    body.update(overrides)
    return body


def request_payload(**overrides: Any) -> dict[str, Any]:
    body = {
        "pickup_lat": DOWNTOWN[0],
        "pickup_lng": DOWNTOWN[1],
        "pickup_address": "Market Square, Pittsburgh",
        "dropoff_lat": AIRPORT[0],
        "dropoff_lng": AIRPORT[1],
        "dropoff_address": "Pittsburgh International Airport",
        "desired_time": in_hours(24).isoformat(),
        "time_flexibility": 30,
        "seats_needed": 1,
        "max_price": 20.0,
    }
    body.update(overrides)
    return body


# ── Fakes ─────────────────────────────────────────────────────────────


class FakePaymentGateway(PaymentGateway):
    """In-memory processor; set ``fail_on`` to make one operation fail."""

    def __init__(self):
        self.intents: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: Optional[str] = None

    def _check(self, op: str, ref: str = "") -> None:
        if self.fail_on == op:
            raise ExternalServiceError("Payment processor error: card_declined")
        self.calls.append((op, ref))

    async def authorize(self, amount: float, metadata: dict) -> PaymentIntent:
        self._check("authorize")
        ref = f"pi_test_{len(self.intents) + 1}"
        self.intents[ref] = "requires_capture"
        return PaymentIntent(
            ref=ref,
            status="requires_capture",
            amount=to_minor_units(amount),
            currency="usd",
            client_secret=f"{ref}_secret",
        )

    async def capture(self, ref: str) -> PaymentReceipt:
        self._check("capture", ref)
        self.intents[ref] = "succeeded"
        return PaymentReceipt(ref=ref, status="succeeded")

    async def refund(self, ref: str) -> PaymentReceipt:
        self._check("refund", ref)
        self.intents[ref] = "canceled"
        return PaymentReceipt(ref=ref, status="canceled")

    async def retrieve(self, ref: str) -> PaymentIntent:
        self._check("retrieve", ref)
        return PaymentIntent(ref=ref, status=self.intents[ref], amount=0, currency="usd")


class RecordingPublisher(Publisher):
    def __init__(self):
        self.events: list[tuple[int, str, Any]] = []

    async def publish(self, user_id: int, event: str, payload: Any) -> None:
        self.events.append((user_id, event, payload))

    def named(self, event: str) -> list[tuple[int, Any]]:
        return [(uid, payload) for uid, name, payload in self.events if name == event]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory schema per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def payments() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def app(session_factory, payments, publisher):
    """Application wired to SQLite and the in-memory fakes."""
    from carpool.api.app import create_app
    from carpool.api.dependencies import (
        get_payment_gateway,
        get_publisher,
        get_session_factory,
    )

    app = create_app()
    app.dependency_overrides[get_payment_gateway] = lambda: payments
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def register(
    client: AsyncClient, name: str, email: str, phone: str, role: str
) -> dict[str, Any]:
    resp = await client.post(
        "/api/v1/auth/register",
        json={
            "email": email,
            "phone": phone,
            "password": "s3cret-pass",
            "name": name,
            "role": role,
        },
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {
        "id": data["user"]["id"],
        "token": data["token"],
        "headers": {"Authorization": f"Bearer {data['token']}"},
    }


@pytest_asyncio.fixture
async def driver(client) -> dict[str, Any]:
    return await register(client, "Dana Driver", "dana@example.com", "+14125550101", "DRIVER")


@pytest_asyncio.fixture
async def rider(client) -> dict[str, Any]:
    return await register(client, "Riley Rider", "riley@example.com", "+14125550102", "RIDER")


@pytest_asyncio.fixture
async def other_rider(client) -> dict[str, Any]:
    return await register(client, "Sam Rider", "sam@example.com", "+14125550103", "RIDER")
