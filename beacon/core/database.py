"""Async engine and sessions shared by the main and monitoring applications."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from beacon.config import Settings, settings

logger = logging.getLogger(__name__)


def is_postgres(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "postgresql"


def engine_options(config: Settings) -> dict[str, Any]:
    """Engine keyword arguments for ``config.database_url``.

    Pool sizing only applies to PostgreSQL; SQLite (local runs and tests)
    keeps SQLAlchemy's default pool.
    """
    options: dict[str, Any] = {
        "echo": config.log_level == "DEBUG",
        "pool_pre_ping": True,
    }
    if is_postgres(config.database_url):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    return options


async_engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Session for work outside request handling.

    Used by the ProcessEvent consumer, the AI analysis service and the main
    application's startup seeding. Commits on success, rolls back on error.

    Usage:
        async with get_session_context() as session:
            result = await session.execute(query)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_pgvector_extension() -> None:
    """Create the ``vector`` extension used by ``ai_documents``.

    Indexed errors are searched by cosine distance, so the monitoring
    application calls this before consuming jobs. Non-PostgreSQL databases
    are skipped.
    """
    if not is_postgres(settings.database_url):
        logger.warning("Database is not PostgreSQL, similarity search is unavailable")
        return

    async with async_engine.begin() as conn:
        try:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            logger.info("PGVector extension initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize PGVector extension: {e}")
            raise


async def check_database_connection() -> bool:
    """Run ``SELECT 1``; failures are logged and reported as False."""
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def close_database() -> None:
    await async_engine.dispose()
    logger.info("Database connections closed")
