"""Shared test fixtures."""
import itertools
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from timeaudit.models.activity import ActivityRow, RemoteActivity  # noqa: F401
from timeaudit.models.storage import StorageSlot  # noqa: F401
from timeaudit.models.sync import SyncLog  # noqa: F401
from timeaudit.remote.base import StaticUserProvider
from timeaudit.storage.pending_queue import PendingActivityQueue
from timeaudit.storage.slots import MemorySlotStore
from timeaudit.sync.synchronizer import ActivitySynchronizer

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
OWNER = "user-1"


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def sequential_ids():
    counter = itertools.count(1)
    return lambda now: f"local_{next(counter)}"


def make_store(insert_error: Optional[Exception] = None, remote=None) -> AsyncMock:
    """AsyncMock ActivityStore; inserts echo back a RemoteActivity with a server id."""
    server_ids = itertools.count(1)

    async def _insert(owner_id, text, logged_at):
        if insert_error is not None:
            raise insert_error
        return RemoteActivity(
            id=f"srv-{next(server_ids)}", owner_id=owner_id, text=text, logged_at=logged_at
        )

    store = AsyncMock()
    store.insert = AsyncMock(side_effect=_insert)
    store.query = AsyncMock(return_value=list(remote or []))
    return store


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="slots")
def slots_fixture() -> MemorySlotStore:
    return MemorySlotStore()


@pytest.fixture(name="queue")
def queue_fixture(slots, clock) -> PendingActivityQueue:
    return PendingActivityQueue(slots, clock=clock, id_factory=sequential_ids())


@pytest.fixture(name="store")
def store_fixture() -> AsyncMock:
    return make_store()


@pytest.fixture(name="synchronizer")
def synchronizer_fixture(queue, store) -> ActivitySynchronizer:
    return ActivitySynchronizer(queue, store, StaticUserProvider(OWNER))
