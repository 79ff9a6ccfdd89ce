"""Async database session management for SQLAlchemy 2.0+.

Defaults to SQLite through aiosqlite; any async SQLAlchemy URL works,
e.g. ``postgresql+asyncpg://...`` in production.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from acquisitions.app.core.config import settings
from acquisitions.app.core.logging import get_logger

logger = get_logger(__name__)

# Global session maker instance
_AsyncSessionLocal = None


@lru_cache(maxsize=1)
def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine (cached singleton).

    Returns:
        AsyncEngine instance
    """
    url = settings.database_url
    engine = create_async_engine(url, echo=settings.db_echo, future=True)
    logger.info(f"Created async engine ({engine.dialect.name})")
    return engine


def get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the async session maker bound to the cached engine."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _AsyncSessionLocal


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager for database sessions.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(...)
    """
    session_maker = get_async_session_maker()
    async with session_maker() as session:
        yield session


async def init_async_db(drop_first: bool = False) -> None:
    """Create all tables, optionally dropping them first.

    Called during application startup.
    """
    from acquisitions.app.db import models  # noqa: F401 - register models
    from acquisitions.app.db.base import Base

    engine = get_async_engine()
    async with engine.begin() as conn:
        if drop_first:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


async def close_async_engine() -> None:
    """Dispose the engine and clear the cached singletons.

    Call this on application shutdown to release database connections.
    """
    global _AsyncSessionLocal

    engine = get_async_engine()
    try:
        await engine.dispose()
    except RuntimeError:
        # Event loop mismatch - connections already closed by another loop
        logger.debug("Engine dispose encountered RuntimeError (event loop mismatch)")

    get_async_engine.cache_clear()
    _AsyncSessionLocal = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Transaction handling:
    - Successful requests: changes are committed
    - Exceptions: changes are rolled back, exception is re-raised
    """
    async with get_async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
