import sys
import os
import pytest
from datetime import timedelta
from pathlib import Path

# Add project root (1 level up from tests/) to sys.path so tests can import 'groupcall'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

# Settings are read at import time; keep the default engine off Postgres
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./groupcall_test.db")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("EVENT_RELAY_ENABLED", "false")

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from groupcall.models import Base
from groupcall.services.core import SqlRoomDirectory, SqlSessionStore
from groupcall.services.group_call import GroupCallLifecycleManager, TimerRegistry
from groupcall.services.group_call.state import utcnow
from tests.helpers import RecordingDispatcher, seed_room


class FakeClock:
    """Manually advanced clock for the lifecycle manager."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
async def session_factory(tmp_path):
    """
    File-backed SQLite database per test.

    A file (not :memory:) gives every session its own connection, so
    concurrent writers really do race on the version column.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'groupcall.db'}", echo=False, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await seed_room(factory)
    yield factory
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlSessionStore(session_factory)


@pytest.fixture
def rooms(session_factory):
    return SqlRoomDirectory(session_factory)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def timers():
    registry = TimerRegistry()
    yield registry
    await registry.shutdown()


@pytest.fixture
async def manager(store, rooms, dispatcher, timers, clock):
    lifecycle = GroupCallLifecycleManager(
        store,
        rooms,
        dispatcher,
        timers,
        retry_max_attempts=5,
        retry_backoff_sec=0.01,
        clock=clock,
    )
    yield lifecycle
    await lifecycle.drain_notifications()


@pytest.fixture
async def fast_manager(store, rooms, dispatcher, timers, clock):
    """Lifecycle manager whose abandonment timer fires almost immediately."""
    lifecycle = GroupCallLifecycleManager(
        store,
        rooms,
        dispatcher,
        timers,
        abandonment_timeout_sec=0.05,
        retry_max_attempts=5,
        retry_backoff_sec=0.01,
        clock=clock,
    )
    yield lifecycle
    await timers.shutdown()
    await lifecycle.drain_notifications()
