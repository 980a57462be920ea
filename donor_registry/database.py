from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from donor_registry.config import Settings
from donor_registry.db.base import Base
from donor_registry.utils.logging_config import get_logger

logger = get_logger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build the async engine for the configured database URL"""
    url = make_url(settings.DATABASE_URL)
    backend = url.get_backend_name()
    logger.info(f"Database backend: {backend}")

    if backend == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases only exist per connection
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_async_engine(settings.DATABASE_URL, **kwargs)

    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=5,
        max_overflow=10,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Import models so they register on Base.metadata
    from donor_registry.models import donor  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully.")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections gracefully"""
    await engine.dispose()
    logger.info("Database connections closed.")
