"""
generation.py
-------------
Runs one generation against the stream bridge.

`run_generation` records the run for its chat, opens the channel, hands the sink to
the producer (the model loop, which emits events and calls document tools), and on
every path emits `data-finish` and closes the sink so readers see end-of-stream.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

import sentry_sdk

from schemas.stream_events import EventType, make_event
from services.stream_bridge import StreamBridge, StreamSink
from services.stream_records import StreamRecordStore
from utils.logging_config import stream_id_var
from utils.sentry_utils import sentry_span_context, set_sentry_tag

logger = logging.getLogger(__name__)

Producer = Callable[[StreamSink], Awaitable[Any]]


async def run_generation(
    bridge: StreamBridge,
    store: StreamRecordStore,
    chat_id: str,
    producer: Producer,
    stream_id: Optional[str] = None,
) -> str:
    """Execute `producer` as a resumable run of `chat_id`; returns the stream id."""
    stream_id = stream_id or uuid.uuid4().hex
    token = stream_id_var.set(stream_id)
    try:
        await store.create_stream_record(stream_id, chat_id)
        sink = await bridge.open_channel(stream_id)
        set_sentry_tag("stream_mode", sink.mode.value)

        with sentry_span_context("stream.generate", "run_generation", chat_id=chat_id):
            try:
                await producer(sink)
            except Exception as e:
                logger.error(f"Generation {stream_id} for chat {chat_id} failed: {e}", exc_info=True)
                sentry_sdk.capture_exception(e)
                raise
            finally:
                if not sink.closed:
                    await sink.write(make_event(EventType.FINISH, transient=True))
                    await sink.close()
        logger.info(f"Generation {stream_id} for chat {chat_id} finished")
        return stream_id
    finally:
        stream_id_var.reset(token)


async def latest_stream_id(store: StreamRecordStore, chat_id: str) -> Optional[str]:
    """Most recent run of a chat, for resumption."""
    return await store.latest_stream_id(chat_id)
