from __future__ import annotations

import os

# Point settings at an in-memory database before any module builds the engine.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auditcycle.domain.models import Base
from auditcycle.tests.utils.fakes import FakeClock, FakeTimerFactory


@pytest.fixture
async def session_factory():
    # Fresh schema per test; StaticPool keeps every session on the one in-memory connection.
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2030, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()
