"""
Shared fixtures.

    repository     — WardRepository on an in-memory aiosqlite database
    seeded         — the same repository holding the 8 demo wards
    broken_repo    — WardRepository whose database cannot be opened
    recorder       — bus subscriber that keeps every event
"""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from monsoon.app.core import cache
from monsoon.app.core.database import Base
from monsoon.app.realtime.events import Event, Topic
from monsoon.app.wards.demo import demo_wards
from monsoon.app.wards.repository import WardRepository


@pytest.fixture(autouse=True)
def _in_process_cache(monkeypatch):
    """Keep every test off Redis and start with an empty local cache."""
    monkeypatch.setattr(cache, "_redis_disabled", True)
    cache._local.clear()
    yield
    cache._local.clear()


def make_sqlite_engine():
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
async def session_factory():
    engine = make_sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
def repository(session_factory) -> WardRepository:
    return WardRepository(lambda: session_factory)


@pytest.fixture
async def seeded(repository) -> WardRepository:
    await repository.upsert_many(demo_wards())
    return repository


@pytest.fixture
async def broken_repo(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/wards.db")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield WardRepository(lambda: factory)
    await engine.dispose()


class EventRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of(self, topic: Topic):
        return [e.payload for e in self.events if e.topic == topic]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
