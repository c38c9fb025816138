import os
from typing import Any, AsyncGenerator, Dict, Generator, List
from unittest.mock import AsyncMock, MagicMock

# The app reads its settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PRESENCE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import estate_chat.models.db  # noqa: E402,F401
from estate_chat.auth import create_access_token  # noqa: E402
from estate_chat.database import Base  # noqa: E402
from estate_chat.main import app  # noqa: E402
from estate_chat.realtime.broadcast import BroadcastRouter  # noqa: E402
from estate_chat.realtime.presence import InMemoryPresenceRegistry  # noqa: E402


class RecordingSocket:
    """Stands in for a client connection; records every frame it is sent."""

    def __init__(self, fail: bool = False):
        self.frames: List[Dict[str, Any]] = []
        self.fail = fail

    async def __call__(self, frame: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.frames.append(frame)

    def events(self) -> List[str]:
        return [frame["event"] for frame in self.frames]

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [frame["data"] for frame in self.frames if frame["event"] == event]


@pytest.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session for integration tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def mock_db() -> AsyncGenerator[AsyncMock, None]:
    """Create a mock database session for unit tests."""
    # Use mock to avoid database connection issues in unit tests
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async
    mock_session.add_all = MagicMock()

    yield mock_session


@pytest.fixture
def presence() -> InMemoryPresenceRegistry:
    return InMemoryPresenceRegistry()


@pytest.fixture
def broadcaster(presence: InMemoryPresenceRegistry) -> BroadcastRouter:
    return BroadcastRouter(presence)


@pytest.fixture
def recording_socket() -> type:
    """The RecordingSocket class, for tests that need several sockets."""
    return RecordingSocket


@pytest.fixture
def auth_headers() -> Any:
    """Build Authorization headers for an identity."""

    def _headers(identity: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(identity)}"}

    return _headers


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
