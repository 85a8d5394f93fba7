"""
stream.py
---------
Stream bookkeeping models.

- `Stream`: correlates one generation run (`id` = stream id) with its chat. Created
  before the first event is emitted and never updated.
- `StreamLogEntry`: one durably recorded frame of a run. Lives on its own declarative
  base because the log may be kept in a different database (`STREAM_STORE_URL`).
"""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, declarative_base

from db import Base

StreamLogBase = declarative_base()


class Stream(Base):
    __tablename__ = "streams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), nullable=False)

    def __repr__(self) -> str:
        return f"<Stream {self.id} chat={self.chat_id}>"


class StreamLogEntry(StreamLogBase):
    __tablename__ = "stream_events"

    stream_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, primary_key=True)
    frame: Mapped[str] = mapped_column(Text, nullable=False)
    terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), nullable=False)
