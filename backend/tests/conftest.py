"""
Pytest fixtures for test database, reservation service, client, and authentication.

Each test gets a fresh SQLite file database (or TEST_DATABASE_URL when set,
e.g. a PostgreSQL test database). Sessions are real: the coordinator opens
and commits its own transactions exactly as it does in production.
"""

import os

# Must be set before the application settings are first read
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./ticketing_default.db")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ticketing.main import app
from ticketing.db.base import Base
from ticketing.db.session import build_engine, build_session_factory, get_db
from ticketing.core.security import create_access_token
from ticketing.models import Resource
from ticketing.schemas.resource import ResourceCreate
from ticketing.services import inventory_store
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission
from ticketing.services.reference_generator import ReferenceGenerator
from ticketing.services.reservation_service import ReservationService, get_reservation_service
from ticketing.services.resource_service import create_resource

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

OWNER_ID = "user-1001"
OTHER_OWNER_ID = "user-2002"


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables on a fresh database, drop them afterwards."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}"
    test_engine = build_engine(url)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def service(session_factory) -> ReservationService:
    """Coordinator wired to the test database, no Redis gate."""
    return ReservationService(
        session_factory,
        reference_generator=ReferenceGenerator("TG"),
        admission=OptimisticAdmission(),
        hold_seconds=30,
        max_reference_attempts=5,
    )


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB and coordinator dependencies pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reservation_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers with a Bearer token for OWNER_ID."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': OWNER_ID})}"}


@pytest.fixture
def other_auth_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': OTHER_OWNER_ID})}"}


@pytest.fixture
def resource_factory(session_factory):
    """Create a resource with its units directly in the database."""

    async def _create(
        capacity: int = 10,
        kind: str = "bus",
        origin: Optional[str] = "Nairobi",
        destination: Optional[str] = "Mombasa",
        days_ahead: int = 7,
        price: str = "1500.00",
        name: str = "Coast Express",
    ) -> Resource:
        data = ResourceCreate(
            kind=kind,
            name=name,
            origin=origin,
            destination=destination,
            venue="Main Hall" if kind == "event" else None,
            departs_at=datetime.now(timezone.utc) + timedelta(days=days_ahead),
            price=Decimal(price),
            capacity=capacity,
        )
        async with session_factory() as db:
            resource = await create_resource(db, data)
            await db.commit()
        return resource

    return _create


@pytest_asyncio.fixture
async def bus(resource_factory) -> Resource:
    """A bus run with 10 seats."""
    return await resource_factory(capacity=10)


@pytest_asyncio.fixture
async def single_seat_bus(resource_factory) -> Resource:
    """A bus run with exactly one seat left to fight over."""
    return await resource_factory(capacity=1, name="Last Seat Shuttle")


@pytest.fixture
def passenger() -> dict:
    return {
        "name": "Amina Wanjiru",
        "id_number": "28471956",
        "phone": "0712345678",
        "next_of_kin_name": "Joseph Wanjiru",
        "next_of_kin_phone": "0722334455",
    }


@pytest.fixture
def make_intent(passenger):
    """Build a reservation intent payload for one unit."""

    def _make(resource_id: int, unit_id: int, **overrides) -> dict:
        intent = {
            "resource_id": resource_id,
            "unit_id": unit_id,
            "passenger": dict(passenger),
            "payment_method": "mpesa",
        }
        intent.update(overrides)
        return intent

    return _make


@pytest.fixture
def units_of(session_factory):
    """Current inventory units of a resource, in seat order."""

    async def _units(resource_id: int, available_only: bool = False):
        async with session_factory() as db:
            return await inventory_store.list_units(db, resource_id, available_only=available_only)

    return _units


@pytest.fixture
def fetch_resource(session_factory):
    """Reload a resource to read its committed available_count."""

    async def _fetch(resource_id: int) -> Resource:
        async with session_factory() as db:
            return await db.get(Resource, resource_id)

    return _fetch
