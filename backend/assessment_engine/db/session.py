"""Database session management."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from assessment_engine.db.base import Base
from assessment_engine.db.engine import get_engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,  # Prevent lazy loading issues
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the process-wide engine."""
    return create_session_factory(get_engine())


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with get_session_factory()() as db:
        yield db


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables (tests and local bootstrap)."""
    # Import models so they register on the metadata
    import assessment_engine.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
