"""
db/__init__.py
------------
Database package initialization.
Exposes core database functionality and table bootstrap helpers.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from db.db import (
    Base,
    async_engine,
    AsyncSessionLocal,
    build_async_engine,
    get_async_session,
    get_async_session_context,
)

logger = logging.getLogger(__name__)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables registered on `Base` (idempotent)."""
    import models  # noqa: F401  (registers every model on Base.metadata)

    engine = engine or async_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", extra={"tables": len(Base.metadata.tables)})


async def check_db_connection(engine: AsyncEngine | None = None) -> bool:
    """Return True if a trivial query succeeds."""
    engine = engine or async_engine
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connectivity check failed: {e}")
        return False


__all__ = [
    "Base",
    "async_engine",
    "AsyncSessionLocal",
    "build_async_engine",
    "get_async_session",
    "get_async_session_context",
    "init_db",
    "check_db_connection",
]
