"""Pytest configuration and fixtures for FarmConnect tests.

Provides an in-memory database per test, a fake payment gateway,
seeded profiles and authentication headers.
"""

import hashlib
import hmac
import json
import os
import time
from typing import AsyncGenerator

# Must be set before farmconnect.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("PAYOUT_RETRY_INTERVAL_SECONDS", "0")
os.environ.setdefault("DEBUG", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from farmconnect.auth.jwt import create_access_token
from farmconnect.config import settings
from farmconnect.database import Base, get_db
from farmconnect.main import app
from farmconnect.models import Farmer, Market, Transporter
from farmconnect.services.gateway import StripeGateway, get_gateway
from farmconnect.services.order_state import create_order


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory SQLite database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session shared by the test and the app under test."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


# ── Payment gateway ──────────────────────────────────────────────

class FakeGateway(StripeGateway):
    """Stripe gateway without network calls.

    Checkout sessions are kept in memory; webhook signature verification
    is the real one.
    """

    def __init__(self):
        super().__init__(api_key="sk_test_fake")
        self.sessions: dict[str, dict] = {}
        self.created: list[dict] = []

    async def create_checkout_session(self, params: dict) -> dict:
        session_id = f"cs_test_{len(self.created) + 1}"
        session = {
            "id": session_id,
            "url": f"https://checkout.stripe.test/pay/{session_id}",
            "payment_status": "unpaid",
            "metadata": dict(params.get("metadata") or {}),
        }
        self.created.append(params)
        self.sessions[session_id] = session
        return session

    async def retrieve_checkout_session(self, session_id: str) -> dict:
        return self.sessions.get(
            session_id, {"id": session_id, "payment_status": "unpaid", "metadata": {}}
        )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def sign_payload(payload: str, secret: str | None = None, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for `payload`."""
    secret = secret or settings.stripe_webhook_secret
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


@pytest_asyncio.fixture
async def client(db_session, gateway) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database and gateway dependencies overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def farmer(db_session: AsyncSession) -> Farmer:
    farmer = Farmer(
        name="Wanjiku Kamau",
        email="wanjiku@example.com",
        farm_name="Kiambu Greens",
        location_address="Kiambu",
    )
    db_session.add(farmer)
    await db_session.flush()
    return farmer


@pytest_asyncio.fixture
async def market(db_session: AsyncSession) -> Market:
    market = Market(
        business_name="Westlands Fresh",
        business_type="Grocery",
        email="buyer@westlandsfresh.example.com",
        location_address="Nairobi",
    )
    db_session.add(market)
    await db_session.flush()
    return market


@pytest_asyncio.fixture
async def transporter(db_session: AsyncSession) -> Transporter:
    transporter = Transporter(
        company_name="Rift Cold Chain",
        vehicle_type="Refrigerated truck",
        base_rate=50.0,
        per_km_rate=5.0,
        refrigeration_premium=30.0,
        has_refrigeration=True,
        is_available=True,
    )
    db_session.add(transporter)
    await db_session.flush()
    return transporter


@pytest_asyncio.fixture
async def order(db_session: AsyncSession, market, farmer, transporter):
    """Pending order: 850.00 of produce plus 150.00 transport."""
    return await create_order(
        db_session,
        market_id=market.id,
        farmer_id=farmer.id,
        transporter_id=transporter.id,
        items=[{"produce_id": "produce-tomatoes", "quantity": 10, "unit_price": 85.0}],
        transport_cost=150.0,
        distance_km=20.0,
    )


def auth_headers_for(profile_id: str, kind: str) -> dict:
    token = create_access_token(profile_id, kind)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def market_headers(market) -> dict:
    return auth_headers_for(market.id, "market")


@pytest.fixture
def farmer_headers(farmer) -> dict:
    return auth_headers_for(farmer.id, "farmer")


@pytest.fixture
def transporter_headers(transporter) -> dict:
    return auth_headers_for(transporter.id, "transporter")


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
