"""Shared fixtures: in-memory SQLite database, session factory and a frozen clock."""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.models import Base
from evswap.utils.clock import Clock

FROZEN_NOW = datetime(2026, 10, 18, 3, 0, tzinfo=timezone.utc)
FROZEN_TODAY = date(2026, 10, 18)


class FrozenClock(Clock):
    def __init__(self, now: datetime = FROZEN_NOW, tz_name: str = "Asia/Ho_Chi_Minh"):
        super().__init__(tz_name)
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, delta):
        self._now = self._now + delta


@pytest.fixture
def clock():
    return FrozenClock()


@pytest_asyncio.fixture
async def async_db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # one shared connection for the in-memory database
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_db_engine):
    return async_sessionmaker(async_db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
