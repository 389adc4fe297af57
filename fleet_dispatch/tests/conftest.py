"""
Centralized Test Configuration.
"""

import asyncio
import time
import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool
from redis.exceptions import LockError, LockNotOwnedError

from fleet_dispatch.app.main import app
from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.db.session import get_db, Base
import fleet_dispatch.app.core.redis_client as redis_client_module
from fleet_dispatch.app.services import fleet_registry as registry
from fleet_dispatch.app.services import trip_state_machine as trips

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

    def lock(self, name, timeout=None, sleep=0.1, blocking_timeout=None, thread_local=True):
        return MockLock(self, name, sleep, blocking_timeout)


class MockLock:
    """Token lock over MockRedis; release only deletes the key while it still holds our token."""

    def __init__(self, redis, name, sleep, blocking_timeout):
        self.redis = redis
        self.name = name
        self.sleep = sleep
        self.blocking_timeout = blocking_timeout
        self.token = None

    async def acquire(self):
        token = uuid.uuid4().hex
        deadline = time.monotonic() + (self.blocking_timeout or 0)
        while not await self.redis.set(self.name, token, nx=True):
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.sleep)
        self.token = token
        return True

    async def release(self):
        token, self.token = self.token, None
        if token is None:
            raise LockError("Cannot release an unlocked lock")
        if self.redis.store.get(self.name) != token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.redis.store[self.name]


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the trip lock
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    # Notifier only logs unless a test configures a webhook
    original_webhook = settings.notifier_webhook_url
    settings.notifier_webhook_url = None

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client
    settings.notifier_webhook_url = original_webhook


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


# --- Fleet fixtures ---

@pytest.fixture
async def driver(db_session):
    return await registry.create_driver(
        db_session, name="Asha Rao", mobile="+15550001", email="asha@fleet.test",
        license="DL-001", password="secret123", is_available=True,
    )


@pytest.fixture
async def second_driver(db_session):
    return await registry.create_driver(
        db_session, name="Ben Okafor", mobile="+15550002", email="ben@fleet.test",
        license="DL-002", password="secret123", is_available=True,
    )


@pytest.fixture
async def vehicle(db_session):
    return await registry.create_vehicle(
        db_session, reg_number="KA-01-1234", model="Tata Ace", vehicle_type="Van", capacity="750kg",
    )


@pytest.fixture
async def second_vehicle(db_session):
    return await registry.create_vehicle(
        db_session, reg_number="KA-01-5678", model="Eicher Pro", vehicle_type="Truck",
    )


@pytest.fixture
async def parcels(db_session):
    return [
        await registry.create_parcel(
            db_session, tracking_id="TRK-1001", weight_kg=2.5, recipient_name="Carla",
            recipient_phone="+15559001",
        ),
        await registry.create_parcel(
            db_session, tracking_id="TRK-1002", weight_kg=4.0, recipient_name="Dev",
            recipient_email="dev@example.test",
        ),
    ]


def destinations_for(parcels):
    return [
        {
            "parcel_id": parcel.id,
            "latitude": 12.97 + index / 100,
            "longitude": 77.59 + index / 100,
            "location_name": f"Stop {index + 1}",
            "order": index + 1,
        }
        for index, parcel in enumerate(parcels)
    ]


@pytest.fixture
def make_destinations():
    return destinations_for


@pytest.fixture
async def trip(db_session, driver, vehicle, parcels):
    """A pending trip assigned by manager M1."""
    return await trips.create_trip(
        db_session,
        trip_id="T1",
        driver_id=driver.id,
        vehicle_id=vehicle.id,
        parcel_ids=[p.id for p in parcels],
        destinations=destinations_for(parcels),
        start_location={"latitude": 12.95, "longitude": 77.55, "address": "Depot"},
        assigned_by="M1",
    )
