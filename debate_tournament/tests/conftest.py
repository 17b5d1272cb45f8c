"""
Shared fixtures: in-memory database per test and an API client bound to it.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from debate_tournament.config.feature_flags import FeatureFlags, DRAW_POLICY_PERSIST
from debate_tournament.orm.base import Base
from debate_tournament.services.standings_service import trace_cache

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    from debate_tournament.database import get_db
    from debate_tournament.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def standings_flags(monkeypatch):
    monkeypatch.setattr(FeatureFlags, "TIEBREAK_DRAW_POLICY", DRAW_POLICY_PERSIST)
    monkeypatch.setattr(FeatureFlags, "TIEBREAK_RANDOM_SEED", None)
    monkeypatch.setattr(FeatureFlags, "FEATURE_STANDINGS_TRACE_CACHE", True)
    trace_cache.clear()
    yield
    trace_cache.clear()
