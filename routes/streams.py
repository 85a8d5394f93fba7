"""
streams.py
----------
Server-Sent Events endpoints for resumable generation streams.

`/api/streams/{stream_id}` replays the run from the start (durable mode) and follows
it live. `/api/chat/{chat_id}/stream` resolves the chat's most recent run first, so
a client that lost its connection can resume with only the chat id.
"""

import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from services.generation import latest_stream_id
from services.stream_bridge import StreamBridge
from services.stream_records import StreamRecordStore
from utils.event_codec import to_sse
from utils.service_deps import get_bridge, get_stream_records

logger = logging.getLogger(__name__)
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _sse_feed(bridge: StreamBridge, stream_id: str) -> AsyncIterator[str]:
    sent = 0
    try:
        async for frame in bridge.attach(stream_id):
            sent += 1
            yield to_sse(frame)
    finally:
        logger.info(f"Reader of stream {stream_id} detached after {sent} frames")


def _stream_response(bridge: StreamBridge, stream_id: str) -> StreamingResponse:
    headers = dict(SSE_HEADERS)
    headers["X-Stream-Id"] = stream_id
    headers["X-Stream-Mode"] = (bridge.channel_mode(stream_id) or bridge.mode).value
    return StreamingResponse(
        _sse_feed(bridge, stream_id), media_type="text/event-stream", headers=headers
    )


@router.get("/api/streams/{stream_id}")
async def attach_stream(stream_id: str, bridge: StreamBridge = Depends(get_bridge)):
    return _stream_response(bridge, stream_id)


@router.get("/api/chat/{chat_id}/stream")
async def resume_chat_stream(
    chat_id: str,
    bridge: StreamBridge = Depends(get_bridge),
    records: StreamRecordStore = Depends(get_stream_records),
):
    stream_id = await latest_stream_id(records, chat_id)
    if stream_id is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _stream_response(bridge, stream_id)
