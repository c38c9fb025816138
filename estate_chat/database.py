"""Database configuration and connection management."""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from estate_chat.config import (
    AUTO_CREATE_SCHEMA,
    DATABASE_URL,
    DB_MAX_OVERFLOW,
    DB_POOL_SIZE,
    SQL_DEBUG,
)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")


def _engine_options(url: str) -> Dict[str, Any]:
    # SQLite (local development, tests) does not take pool sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


# Create async engine
engine = create_async_engine(
    DATABASE_URL, echo=SQL_DEBUG, future=True, **_engine_options(DATABASE_URL)
)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency for long-lived handlers that open a session per unit of work."""
    return AsyncSessionLocal


async def init_db() -> None:
    """Initialize database connection on startup."""
    if AUTO_CREATE_SCHEMA:
        # Import models so they are registered on the metadata
        import estate_chat.models.db  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections on shutdown."""
    await engine.dispose()
