"""
stream_log.py
-------------
Durable backing store for resumable streams: an append-only table of encoded frames
keyed by `(stream_id, seq)`, reachable through its own engine (`STREAM_STORE_URL`).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from db import build_async_engine
from models.stream import StreamLogBase, StreamLogEntry
from utils.serializers import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoggedFrame:
    seq: int
    frame: str
    terminal: bool


class StreamLog:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=engine, expire_on_commit=False
        )
        self._schema_ready = False

    @classmethod
    def from_url(cls, url: str) -> "StreamLog":
        return cls(build_async_engine(url))

    async def ensure_ready(self) -> None:
        """Create the log table on first use and verify the store answers."""
        async with self.engine.begin() as conn:
            if not self._schema_ready:
                await conn.run_sync(StreamLogBase.metadata.create_all)
                self._schema_ready = True
            await conn.execute(text("SELECT 1"))

    async def append(self, stream_id: str, seq: int, frame: str, terminal: bool = False) -> None:
        async with self.session_factory() as session:
            session.add(
                StreamLogEntry(
                    stream_id=stream_id,
                    seq=seq,
                    frame=frame,
                    terminal=terminal,
                    created_at=utc_now(),
                )
            )
            await session.commit()

    async def read(self, stream_id: str, after_seq: int = -1) -> list[LoggedFrame]:
        """Entries with `seq > after_seq`, in order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(StreamLogEntry)
                .where(StreamLogEntry.stream_id == stream_id, StreamLogEntry.seq > after_seq)
                .order_by(StreamLogEntry.seq.asc())
            )
            return [
                LoggedFrame(seq=row.seq, frame=row.frame, terminal=row.terminal)
                for row in result.scalars().all()
            ]

    async def dispose(self) -> None:
        await self.engine.dispose()


def create_stream_log(url: Optional[str]) -> Optional[StreamLog]:
    """Build the durable log for `url`; None (pass-through mode) when unset."""
    if not url:
        logger.info("STREAM_STORE_URL not configured; resumable streams are disabled (pass-through mode)")
        return None
    logger.info("Resumable streams enabled with durable stream log")
    return StreamLog.from_url(url)
