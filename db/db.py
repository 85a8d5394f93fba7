"""
Database Utilities Module (`db.db`)
-----------------------------------

Provides async database connectivity using SQLAlchemy for the versioned document store
and (optionally) the durable stream log.

Features:
- `build_async_engine()` centralizes engine creation so the document store and the stream
  log share connection policy (SSL for PostgreSQL, pre-ping, SQLite pragmas).
- Exports the FastAPI dependency `get_async_session` and the context manager
  `get_async_session_context`.
- Organizes SQLAlchemy `Base` for declarative model classes.

Environment/Config variables recognized:
- `settings.DATABASE_URL`
- `settings.PG_SSL_ALLOW_SELF_SIGNED`
- `settings.PG_SSL_ROOT_CERT`
"""

import logging
import os
import ssl
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from config import settings


logger = logging.getLogger(__name__)


def _str_is_true(v: str | bool | None) -> bool:
    return str(v).lower() in ("1", "true", "yes")


# ---------------------------------------------------------
# SSL/TLS configuration (PostgreSQL only)
# ---------------------------------------------------------
def _build_pg_ssl_context() -> ssl.SSLContext:
    if _str_is_true(settings.PG_SSL_ALLOW_SELF_SIGNED):
        logger.warning("Using UNVERIFIED SSL context (self-signed allowed).")
        return ssl._create_unverified_context()

    ctx = ssl.create_default_context()
    cert_path = settings.PG_SSL_ROOT_CERT
    if cert_path and os.path.isfile(cert_path):
        ctx.load_verify_locations(cafile=cert_path)
        logger.info(f"Using PostgreSQL CA bundle: {cert_path}")
    else:
        logger.info("No explicit CA bundle configured; using system trust store.")
    return ctx


def build_async_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine with the connection policy shared across the app."""
    connect_args: dict[str, Any] = kwargs.pop("connect_args", {})
    if url.startswith("postgresql"):
        connect_args.setdefault("ssl", _build_pg_ssl_context())

    engine = create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=connect_args,
        **kwargs,
    )

    if url.startswith("sqlite"):
        # SQLite only checks foreign keys when asked to
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_fk(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# ---------------------------------------------------------
# Async engine/session: for normal runtime usage
# ---------------------------------------------------------
async_engine = build_async_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(bind=async_engine, expire_on_commit=False)

# ---------------------------------------------------------
# Base for models
# ---------------------------------------------------------
Base = declarative_base()


# ---------------------------------------------------------
# Session management utilities
# ---------------------------------------------------------
async def get_async_session() -> AsyncGenerator:
    """FastAPI dependency for getting an async DB session."""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_async_session_context():
    """Async context manager for database sessions."""
    session = AsyncSessionLocal()
    try:
        yield session
    finally:
        await session.close()
