"""
event_codec.py
--------------
Pure (de)serialization of stream events. Frames are single-line JSON objects; over
HTTP they are carried as Server-Sent Events `data:` lines.

Decoding never raises for bad input: malformed, untyped, unknown or invalid frames
are dropped with a warning so one bad frame cannot abort a stream.
"""

import json
import logging
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, Optional, Union

from pydantic import BaseModel, ValidationError

from schemas.stream_events import EventType, StreamEvent

logger = logging.getLogger(__name__)

SSE_PREFIX = "data:"
SSE_DONE = "[DONE]"

_KNOWN_TYPES = {t.value for t in EventType}


def encode_event(event: StreamEvent) -> str:
    """Serialize one event as a compact single-line JSON frame."""
    data = event.data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(
        {"type": event.type.value, "data": data, "transient": event.transient},
        separators=(",", ":"),
    )


def decode_frame(frame: Union[str, bytes]) -> Optional[StreamEvent]:
    """
    Parse one frame (optionally SSE-prefixed) into an event.

    Returns None for blank lines, the SSE done marker, and every kind of invalid frame.
    """
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    text = frame.strip()
    if text.startswith(SSE_PREFIX):
        text = text[len(SSE_PREFIX):].strip()
    if not text or text == SSE_DONE:
        return None

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Dropping malformed stream frame: {e.msg} at {e.pos}")
        return None

    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        logger.warning("Dropping stream frame without a type")
        return None

    if raw["type"] not in _KNOWN_TYPES:
        logger.warning(f"Dropping stream frame of unknown type {raw['type']!r}")
        return None

    try:
        return StreamEvent.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            f"Dropping invalid {raw['type']} frame: {e.error_count()} validation error(s)"
        )
        return None


def iter_frames(payload: str) -> Iterator[StreamEvent]:
    """Decode newline-delimited frames, skipping anything undecodable."""
    return decode_stream(payload.splitlines())


def decode_stream(frames: Iterable[Union[str, bytes]]) -> Iterator[StreamEvent]:
    for frame in frames:
        event = decode_frame(frame)
        if event is not None:
            yield event


async def adecode_stream(frames: AsyncIterable[Union[str, bytes]]) -> AsyncIterator[StreamEvent]:
    async for frame in frames:
        event = decode_frame(frame)
        if event is not None:
            yield event


def to_sse(frame: str) -> str:
    """Wrap an encoded frame for a `text/event-stream` response."""
    return f"{SSE_PREFIX} {frame}\n\n"
