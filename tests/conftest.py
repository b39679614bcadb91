"""Pytest configuration and fixtures."""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from app.main import app
from app.utils.locks import EntityLockRegistry

# 2024-01-01T00:00:00Z
JAN_1_2024_US = 1_704_067_200_000_000


class FakeClock:
    """Deterministic clock returning epoch microseconds."""

    def __init__(self, start: int = JAN_1_2024_US):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, microseconds: int) -> None:
        self.now += microseconds


@pytest.fixture
def clock():
    """A clock pinned to 2024-01-01T00:00:00Z that only moves when told to."""
    return FakeClock()


@pytest.fixture
def locks():
    """A lock registry private to one test."""
    return EntityLockRegistry()


@pytest.fixture
def mock_db():
    """An in-memory MongoDB database."""
    client = AsyncMongoMockClient()
    return client["time_tracking_test"]


@pytest.fixture
def seed(mock_db):
    """
    Insert tasks and projects into the hierarchy collections.

    Usage: await seed(tasks=[{"_id": "t1", ...}], projects=[...])
    """
    async def _seed(tasks=(), projects=()):
        if tasks:
            await mock_db["tasks"].insert_many([dict(task) for task in tasks])
        if projects:
            await mock_db["projects"].insert_many([dict(project) for project in projects])

    return _seed


@pytest_asyncio.fixture
async def app_client(mock_db):
    """
    Create a test client backed by an in-memory database.

    This fixture:
    - Swaps the global database for the in-memory one
    - Yields an async HTTP client for testing
    - Restores the original database afterwards
    """
    from app.database import database
    original_db = database.db
    database.db = mock_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    database.db = original_db
