"""Shared test configuration and fixtures.

Every test gets a fresh database so committed state never leaks between
tests:
- ``TEST_DATABASE_URL`` selects the database (e.g. a throwaway PostgreSQL
  database); by default an in-memory SQLite database is used.
- Tables are created from ``Base.metadata`` at the start of each test.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import stayride.models  # noqa: F401  (registers every table on Base.metadata)
from stayride.api.deps import get_charger, get_notifier
from stayride.auth.jwt import create_access_token
from stayride.database import Base, get_db, get_session_factory
from stayride.main import app
from stayride.models.listing import Listing
from stayride.models.trip import Trip
from stayride.models.user import User
from stayride.services.fees import FeeSchedule
from stayride.services.notifier import Notifier
from stayride.timeutils import utcnow

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

CHECKOUT_URL = "https://gateway.test/checkout/session"


def _make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        return create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create an engine with all tables, dropped again after the test."""
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session on the test database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def schedule() -> FeeSchedule:
    return FeeSchedule()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def charger() -> AsyncMock:
    """Stand-in for the gateway call; returns a fixed checkout URL."""
    return AsyncMock(return_value=CHECKOUT_URL)


@pytest_asyncio.fixture
async def client(session_factory, charger) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test database and a fake gateway."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_charger] = lambda: charger
    app.dependency_overrides[get_notifier] = Notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: users, listing, trip
# ---------------------------------------------------------------------------


async def _make_user(db: AsyncSession, role: str, name: str, **extra) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(email=f"{role}-{unique}@test.com", name=name, role=role, is_active=True, **extra)
    db.add(user)
    await db.commit()
    return user


def bearer(user: User) -> dict[str, str]:
    """Authorization headers carrying an access token for ``user``."""
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Build bearer headers for any user: ``auth_headers(guest)``."""
    return bearer


@pytest_asyncio.fixture
async def host(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "host", "Test Host", referral_code=f"HOST{uuid.uuid4().hex[:6]}")


@pytest_asyncio.fixture
async def guest(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "guest", "Test Guest", referral_code=f"GUEST{uuid.uuid4().hex[:6]}")


@pytest_asyncio.fixture
async def other_guest(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "guest", "Other Guest")


@pytest_asyncio.fixture
async def driver(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "driver", "Test Driver")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "admin", "Test Admin")


@pytest_asyncio.fixture
async def listing(db_session: AsyncSession, host: User) -> Listing:
    """A 2300/night listing for up to four guests."""
    listing = Listing(
        host_id=host.id,
        title="Hillside Cottage",
        location="Sreemangal",
        price=Decimal("2300.00"),
        max_guests=4,
        is_active=True,
    )
    db_session.add(listing)
    await db_session.commit()
    return listing


@pytest_asyncio.fixture
async def trip(db_session: AsyncSession, driver: User) -> Trip:
    """A four-seat trip departing in ten days at 800 per seat."""
    trip = Trip(
        driver_id=driver.id,
        origin="Dhaka",
        destination="Sreemangal",
        departure_at=utcnow() + timedelta(days=10),
        total_seats=4,
        fare_per_seat=Decimal("800.00"),
        status="available",
    )
    db_session.add(trip)
    await db_session.commit()
    return trip
