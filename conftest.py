"""Global pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database (aiosqlite, single shared
connection) with all tables created and one user row to own documents.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from db import build_async_engine, init_db
from models.user import User
from services.document_store import DocumentStore
from services.stream_log import StreamLog
from services.stream_records import StreamRecordStore
from utils.serializers import utc_now


@pytest.fixture
async def engine():
    engine = build_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def user(session_factory):
    owner = User(email="owner@example.com", created_at=utc_now())
    async with session_factory() as session:
        session.add(owner)
        await session.commit()
    return owner


@pytest.fixture
def store(session_factory):
    return DocumentStore(session_factory)


@pytest.fixture
def stream_records(session_factory):
    return StreamRecordStore(session_factory)


@pytest.fixture
async def stream_log():
    log = StreamLog(build_async_engine("sqlite+aiosqlite://", poolclass=StaticPool))
    yield log
    await log.dispose()
