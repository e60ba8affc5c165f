"""
Database layer — async ward store via SQLAlchemy 2.0 (+ asyncpg in production).

The engine is created lazily on first use so that importing the app (and
the test-suite, which swaps in an in-memory SQLite engine) never needs a
running PostgreSQL.

Usage:
    from monsoon.app.core.database import get_session_factory

    async with get_session_factory()() as session:
        ...
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from monsoon.app.core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.DATABASE_ECHO}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "echo": settings.DATABASE_ECHO,
    }


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL)
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


def configure_engine(engine: AsyncEngine) -> None:
    """Replace the process-wide engine (tests, alternative stores)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )


async def init_db() -> bool:
    """Create tables if missing. Returns False when the store is unreachable."""
    # Import for side effect: registers WardRecord on Base.metadata
    from monsoon.app.wards import repository  # noqa: F401

    try:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.warning("Ward store unavailable at startup: %s", e)
        return False
    logger.info("Database tables initialised")
    return True


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None
