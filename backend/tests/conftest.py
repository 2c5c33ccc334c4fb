"""
Blaze Backend — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── fake_dispatcher: In-memory PushDispatcher that records deliveries
    ├── mock_db_session: Mock database session (no real DB needed)
    ├── mock_store: AlarmStore with every method mocked
    ├── seeded_db: Real SQLite schema with users, alarms and subscriptions
    ├── app / test_client: FastAPI app wired to fake_dispatcher + HTTPX client
    └── user_headers / admin_headers: Bearer tokens for seeded users
"""

import os
import tempfile
from typing import Any, Dict, List, Tuple
from unittest.mock import AsyncMock, MagicMock

# Override settings BEFORE any blaze imports: config reads env at import time
_TEST_DIR = tempfile.mkdtemp(prefix="blaze_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["CONTROLLER_API_KEY"] = ""
os.environ["VAPID_PRIVATE_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from blaze.database import Base, async_session_factory, engine, init_models
from blaze.exceptions import PushDispatchError
from blaze.models.alarm import Alarm
from blaze.models.subscription import Subscription
from blaze.models.user import User
from blaze.services.auth_service import create_access_token
from blaze.services.push_base import PushDispatcher
from blaze.services.store import AlarmStore


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class FakePushDispatcher(PushDispatcher):
    """Records every delivery; endpoints in failing_endpoints are rejected with 410."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.failing_endpoints: set = set()
        self.configured = True

    async def send(self, subscription_info: Dict[str, Any], payload: Dict[str, Any]) -> None:
        endpoint = subscription_info["endpoint"]
        if endpoint in self.failing_endpoints:
            raise PushDispatchError(status_code=410)
        self.sent.append((endpoint, payload))

    def is_configured(self) -> bool:
        return self.configured


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_dispatcher():
    return FakePushDispatcher()


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        async def test_lookup(mock_db_session):
            mock_db_session.execute.return_value.scalars.return_value.first.return_value = alarm
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_store():
    """An AlarmStore whose every coroutine method is an AsyncMock."""
    return AsyncMock(spec=AlarmStore)


@pytest_asyncio.fixture
async def seeded_db():
    """
    Creates the schema in the test SQLite file and loads a known data set.

    Data:
        users:  alice (2 devices), bob (no devices), root (admin, 1 device)
        alarms: ALARM-1 → alice @ "Room 104"
                ALARM-2 unassigned
                ALARM-3 → bob @ "Garage"
    """
    await init_models()
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    async with async_session_factory() as session:
        alice = User(username="alice", first_name="Alice", email="alice@example.com")
        bob = User(username="bob")
        root = User(username="root", admin=True)
        session.add_all([alice, bob, root])
        await session.flush()

        session.add_all([
            Alarm(alarm_serial="ALARM-1", location="Room 104", user_id=alice.id),
            Alarm(alarm_serial="ALARM-2"),
            Alarm(alarm_serial="ALARM-3", location="Garage", user_id=bob.id),
            Subscription(endpoint="https://push.example/alice-phone", p256dh="pk1", auth="a1", user_id=alice.id),
            Subscription(endpoint="https://push.example/alice-laptop", p256dh="pk2", auth="a2", user_id=alice.id),
            Subscription(endpoint="https://push.example/root-phone", p256dh="pk3", auth="a3", user_id=root.id),
        ])
        await session.commit()
        ids = {"alice": alice.id, "bob": bob.id, "root": root.id}

    yield ids

    # aiosqlite connections are bound to the test's event loop
    await engine.dispose()


@pytest.fixture
def app(fake_dispatcher):
    from blaze.main import create_app
    return create_app(push_dispatcher=fake_dispatcher)


@pytest_asyncio.fixture
async def test_client(app, seeded_db):
    """
    HTTPX AsyncClient routed straight into the app via ASGITransport.

    The lifespan does not run here; seeded_db already created the schema.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {create_access_token('alice')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('root', is_admin=True)}"}
