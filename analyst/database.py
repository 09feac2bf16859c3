"""Async database connection using SQLAlchemy (supports SQLite and PostgreSQL)."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from analyst.config import get_settings

logger = logging.getLogger(__name__)


def get_database_url(url: Optional[str] = None) -> str:
    """Convert database URL to async format."""
    url = url or get_settings().DATABASE_URL

    # SQLite
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    # PostgreSQL
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def create_engine(url: Optional[str] = None) -> AsyncEngine:
    """Build an async engine with per-backend pool settings."""
    database_url = get_database_url(url)
    engine_kwargs = {
        "echo": False,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["pool_timeout"] = 30

    return create_async_engine(database_url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async_engine = create_engine()
AsyncSessionLocal = create_session_factory(async_engine)


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Initialize database tables."""
    import analyst.models  # noqa: F401  (register tables on SQLModel.metadata)

    logger.info("Initializing database tables...")
    async with (engine or async_engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables created successfully.")


async def close_db(engine: Optional[AsyncEngine] = None) -> None:
    """Close database connections."""
    logger.info("Closing database connections...")
    await (engine or async_engine).dispose()
    logger.info("Database connections closed.")
