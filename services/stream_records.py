"""
stream_records.py
-----------------
Stream Records correlate a generation run (`stream_id`) with its chat so a client
can find the run to resume. Records are written once and never updated.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.stream import Stream
from utils.serializers import utc_now

logger = logging.getLogger(__name__)


class StreamRecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_stream_record(self, stream_id: str, chat_id: str) -> Stream:
        record = Stream(id=stream_id, chat_id=chat_id, created_at=utc_now())
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
        logger.debug(f"Stream record {stream_id} created for chat {chat_id}")
        return record

    async def get_stream_ids_by_chat_id(self, chat_id: str) -> list[str]:
        """Stream ids of a chat, oldest run first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Stream.id)
                .where(Stream.chat_id == chat_id)
                .order_by(Stream.created_at.asc())
            )
            return list(result.scalars().all())

    async def latest_stream_id(self, chat_id: str) -> Optional[str]:
        stream_ids = await self.get_stream_ids_by_chat_id(chat_id)
        return stream_ids[-1] if stream_ids else None
