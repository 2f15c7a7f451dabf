"""Catalog database connectivity used by health checks."""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from app.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None


def get_engine(database_url: str | None = None) -> AsyncEngine | None:
    """Lazily create the async engine, None when no database is configured."""
    global _engine
    url = database_url or settings.database_url
    if not url:
        return None
    if _engine is None:
        _engine = create_async_engine(url, pool_pre_ping=True, pool_size=2, max_overflow=0)
    return _engine


async def ping_database(engine: AsyncEngine) -> None:
    """Run a trivial query. Raises on any connection failure."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")
