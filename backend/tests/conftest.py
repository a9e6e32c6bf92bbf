"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from assessment_engine.db.engine import create_db_engine
from assessment_engine.db.session import create_session_factory, init_models

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite database, one per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"


@pytest_asyncio.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with all tables created."""
    engine = create_db_engine(database_url)
    await init_models(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Factory for independent sessions (concurrency tests)."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Async database session for service tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def learner_id() -> UUID:
    return uuid4()
