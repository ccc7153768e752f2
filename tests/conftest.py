"""Shared test configuration and fixtures.

Each test gets a fresh database: a temporary SQLite file by default, or the
database named by ``TEST_DATABASE_URL`` (e.g. a PostgreSQL test database).
The Stripe HTTP client is replaced with mocks; webhook signatures are real.
"""

import hashlib
import hmac
import json
import os
import time
import uuid
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("JWT_SECRET_KEY", "staybook-test-secret-key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from staybook.auth.jwt import create_user_token
from staybook.database import Base, create_session_factory, utcnow
from staybook.main import app
from staybook.models.booking import Booking, BookingStatus
from staybook.models.coupon import Coupon, DiscountType
from staybook.models.property import Property
from staybook.models.user import Role, User
from staybook.payments.gateway import StripePaymentGateway
from staybook.payments.reconciler import WebhookReconciler
from staybook.services.availability import claim_nights
from staybook.services.pricing import quote

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'staybook_test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and inspecting data. Commit before handing off."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Payment gateway
# ---------------------------------------------------------------------------


def _fake_intent(*args, **kwargs) -> SimpleNamespace:
    ref = f"pi_test_{uuid.uuid4().hex[:12]}"
    return SimpleNamespace(id=ref, client_secret=f"{ref}_secret_test")


@pytest.fixture
def stripe_client() -> MagicMock:
    """Stand-in for ``StripeClient`` exposing the payment intent calls we use."""
    client = MagicMock()
    client.v1.payment_intents.create_async = AsyncMock(side_effect=_fake_intent)
    client.v1.payment_intents.update_async = AsyncMock(return_value=SimpleNamespace())
    client.v1.payment_intents.cancel_async = AsyncMock(return_value=SimpleNamespace())
    return client


@pytest.fixture
def gateway(stripe_client: MagicMock) -> StripePaymentGateway:
    gw = StripePaymentGateway(
        secret_key="sk_test_dummy",
        webhook_secret=WEBHOOK_SECRET,
        currency="inr",
        timeout_seconds=5,
    )
    gw._client = stripe_client
    return gw


@pytest.fixture
def reconciler(session_factory, gateway) -> WebhookReconciler:
    return WebhookReconciler(session_factory, gateway)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe does."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory, gateway, reconciler) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient against the app, wired to the test database and gateway."""
    app.state.session_factory = session_factory
    app.state.gateway = gateway
    app.state.reconciler = reconciler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


def auth_headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_user_token(str(user.id))}"}


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


async def make_user(db: AsyncSession, role: Role = Role.GUEST, name: str = "Test User") -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(email=f"{role.value}-{unique}@test.com", name=name, role=role, is_active=True)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def host(db_session: AsyncSession) -> User:
    return await make_user(db_session, Role.HOST, "Test Host")


@pytest_asyncio.fixture
async def guest(db_session: AsyncSession) -> User:
    return await make_user(db_session, Role.GUEST, "Test Guest")


@pytest_asyncio.fixture
async def other_guest(db_session: AsyncSession) -> User:
    return await make_user(db_session, Role.GUEST, "Other Guest")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await make_user(db_session, Role.ADMIN, "Test Admin")


@pytest_asyncio.fixture
async def villa(db_session: AsyncSession, host: User) -> Property:
    """A property at 15000 per night plus a 2000 cleaning fee."""
    prop = Property(
        host_id=host.id,
        name="Test Villa",
        nightly_rate=Decimal("15000.00"),
        cleaning_fee=Decimal("2000.00"),
        max_guests=4,
    )
    db_session.add(prop)
    await db_session.commit()
    return prop


@pytest.fixture
def guest_headers(guest: User) -> dict[str, str]:
    return auth_headers_for(guest)


@pytest.fixture
def make_booking(session_factory, villa: Property, guest: User):
    """Insert a booking row directly, bypassing availability and the gateway."""

    async def _make(
        *,
        guest_user: User | None = None,
        check_in: date | None = None,
        nights: int = 3,
        status: BookingStatus = BookingStatus.PENDING,
        external_ref: str | None = None,
        claim: bool = True,
        with_intent: bool = True,
    ) -> Booking:
        check_in = check_in or date.today() + timedelta(days=30)
        check_out = check_in + timedelta(days=nights)
        breakdown = quote(villa, check_in, check_out)
        booking = Booking(
            id=uuid.uuid4(),
            property_id=villa.id,
            guest_id=(guest_user or guest).id,
            check_in=check_in,
            check_out=check_out,
            guest_count=2,
            base_price=breakdown.base_price,
            cleaning_fee=breakdown.cleaning_fee,
            discount_amount=breakdown.discount,
            total=breakdown.total,
            status=status,
            external_ref=external_ref or (f"pi_test_{uuid.uuid4().hex[:12]}" if with_intent else None),
        )
        async with session_factory() as db:
            db.add(booking)
            await db.flush()
            if claim and status is not BookingStatus.CANCELLED:
                db.add_all(claim_nights(booking))
            await db.commit()
        return booking

    return _make


@pytest.fixture
def make_coupon(session_factory):
    """Insert a coupon valid from yesterday for thirty days."""

    async def _make(
        code: str = "SAVE10",
        discount_type: DiscountType = DiscountType.PERCENTAGE,
        discount_value: Decimal = Decimal("10"),
        **overrides,
    ) -> Coupon:
        now = utcnow()
        fields = {
            "code": code,
            "name": f"{code} promotion",
            "discount_type": discount_type,
            "discount_value": discount_value,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        fields.update(overrides)
        coupon = Coupon(**fields)
        async with session_factory() as db:
            db.add(coupon)
            await db.commit()
        return coupon

    return _make


def make_event_payload(event_type: str, payment_ref: str, event_id: str | None = None) -> bytes:
    """Serialise a minimal Stripe payment intent event."""
    return json.dumps(
        {
            "id": event_id or f"evt_test_{uuid.uuid4().hex[:12]}",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": payment_ref, "object": "payment_intent"}},
        }
    ).encode("utf-8")


@pytest.fixture
def signed_webhook():
    """Build ``(payload, headers)`` for a correctly signed webhook delivery."""

    def _build(event_type: str, payment_ref: str, event_id: str | None = None) -> tuple[bytes, dict[str, str]]:
        payload = make_event_payload(event_type, payment_ref, event_id)
        return payload, {"stripe-signature": sign_payload(payload), "content-type": "application/json"}

    return _build


@pytest.fixture
def headers_for():
    return auth_headers_for


@pytest.fixture
def fetch(session_factory):
    """Load a row in a fresh session, so the result reflects committed state."""

    async def _fetch(model, ident):
        async with session_factory() as db:
            return await db.get(model, ident)

    return _fetch


@pytest.fixture
def count_rows(session_factory):
    async def _count(model, *criteria) -> int:
        async with session_factory() as db:
            result = await db.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()

    return _count


@pytest.fixture
def webhook_signature():
    """Sign an arbitrary payload with the test webhook secret."""
    return sign_payload
