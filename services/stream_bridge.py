"""
stream_bridge.py
----------------
Resumable stream bridge between a generation run and its transport.

A run writes encoded frames through a `StreamSink` obtained from `open_channel()`;
viewers read them with `attach()`. The bridge runs in one of two modes:

- durable: every frame is appended to a `StreamLog` before readers are woken. An
  `attach()` replays the log from the start, then follows live frames. Re-attaching
  after a disconnect loses nothing.
- passthrough: no log is configured (or it was unreachable when the channel opened).
  Frames go straight to the attached reader; frames written while nobody is attached
  are lost and a re-attach replays nothing.

Each stream id has one writer and at most one active reader. A new `attach()`
supersedes the previous reader, which then sees end-of-stream.
"""

import asyncio
import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from schemas.stream_events import StreamEvent
from services.stream_log import StreamLog
from utils.event_codec import encode_event
from utils.sentry_utils import capture_degradation

logger = logging.getLogger(__name__)

MAX_RETAINED_CHANNELS = 256

_END = object()
_SUPERSEDED = object()


class BridgeMode(str, enum.Enum):
    DURABLE = "durable"
    PASSTHROUGH = "passthrough"


class ChannelError(Exception):
    """Raised for misuse of a channel (double open, writing after close)."""


@dataclass
class _Channel:
    stream_id: str
    mode: BridgeMode
    cond: asyncio.Condition = field(default_factory=asyncio.Condition)
    frames: list[str] = field(default_factory=list)  # durable mode only
    seq: int = 0
    closed: bool = False
    reader_epoch: int = 0
    live_queue: Optional[asyncio.Queue] = None
    dropped: int = 0


class StreamSink:
    """Writable end of one channel. Exactly one per generation run."""

    def __init__(self, bridge: "StreamBridge", channel: _Channel):
        self._bridge = bridge
        self._channel = channel

    @property
    def stream_id(self) -> str:
        return self._channel.stream_id

    @property
    def mode(self) -> BridgeMode:
        return self._channel.mode

    @property
    def closed(self) -> bool:
        return self._channel.closed

    async def write(self, event: StreamEvent) -> None:
        await self.write_frame(encode_event(event))

    async def write_frame(self, frame: str) -> None:
        if self._channel.closed:
            raise ChannelError(f"Stream {self.stream_id} is closed")
        await self._bridge._publish(self._channel, frame)

    async def close(self) -> None:
        if self._channel.closed:
            return
        await self._bridge._close(self._channel)


class StreamBridge:
    """
    Registry of live channels keyed by stream id.

    Constructed explicitly (see `main.lifespan`) and passed to call sites; there is no
    module-level instance.
    """

    def __init__(self, log: Optional[StreamLog] = None, max_retained: int = MAX_RETAINED_CHANNELS):
        self._log = log
        self._channels: "OrderedDict[str, _Channel]" = OrderedDict()
        self._max_retained = max_retained

    @property
    def mode(self) -> BridgeMode:
        return BridgeMode.DURABLE if self._log is not None else BridgeMode.PASSTHROUGH

    def channel_mode(self, stream_id: str) -> Optional[BridgeMode]:
        channel = self._channels.get(stream_id)
        return channel.mode if channel else None

    # ------------------------------------------------------------------
    # Writer side
    # ------------------------------------------------------------------
    async def open_channel(self, stream_id: str) -> StreamSink:
        if stream_id in self._channels:
            raise ChannelError(f"Stream {stream_id} already has a writer")

        mode = BridgeMode.PASSTHROUGH
        if self._log is not None:
            try:
                await self._log.ensure_ready()
                mode = BridgeMode.DURABLE
            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    f"Stream store unreachable; stream {stream_id} falls back to pass-through: {e}"
                )
                capture_degradation("stream store unreachable", e, stream_id=stream_id)

        channel = _Channel(stream_id=stream_id, mode=mode)
        self._channels[stream_id] = channel
        self._evict_closed()
        logger.info(f"Opened stream {stream_id} ({mode.value})")
        return StreamSink(self, channel)

    async def _publish(self, channel: _Channel, frame: str) -> None:
        seq = channel.seq
        channel.seq += 1
        if channel.mode is BridgeMode.DURABLE:
            try:
                await self._log.append(channel.stream_id, seq, frame)
            except (SQLAlchemyError, OSError) as e:
                # readers in this process still get the frame from memory
                logger.error(f"Failed to persist frame {seq} of stream {channel.stream_id}: {e}")
                capture_degradation("stream frame not persisted", e, stream_id=channel.stream_id, seq=seq)

            async with channel.cond:
                channel.frames.append(frame)
                channel.cond.notify_all()
        else:
            if channel.live_queue is not None:
                channel.live_queue.put_nowait(frame)
            else:
                channel.dropped += 1
                logger.debug(f"No reader attached to {channel.stream_id}; frame {seq} dropped")

    async def _close(self, channel: _Channel) -> None:
        if channel.mode is BridgeMode.DURABLE:
            try:
                await self._log.append(channel.stream_id, channel.seq, "", terminal=True)
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Failed to persist end of stream {channel.stream_id}: {e}")
                capture_degradation("stream terminal not persisted", e, stream_id=channel.stream_id)

        async with channel.cond:
            channel.closed = True
            channel.cond.notify_all()

        if channel.live_queue is not None:
            channel.live_queue.put_nowait(_END)

        logger.info(
            f"Closed stream {channel.stream_id} after {channel.seq} frames"
            + (f" ({channel.dropped} dropped without reader)" if channel.dropped else "")
        )

    # ------------------------------------------------------------------
    # Reader side
    # ------------------------------------------------------------------
    def attach(self, stream_id: str) -> AsyncIterator[str]:
        """
        Readable feed of encoded frames for `stream_id`.

        Supersedes any reader already attached to the same stream.
        """
        channel = self._channels.get(stream_id)
        if channel is not None:
            channel.reader_epoch += 1
            if channel.mode is BridgeMode.PASSTHROUGH:
                return self._attach_passthrough(channel, self._swap_live_queue(channel))
            return self._attach_durable(stream_id, channel, channel.reader_epoch)

        if self._log is not None:
            return self._attach_durable(stream_id, None, 0)
        return self._empty_feed(stream_id)

    async def _empty_feed(self, stream_id: str) -> AsyncIterator[str]:
        logger.info(f"Attach to unknown stream {stream_id}; nothing to replay")
        return
        yield  # pragma: no cover

    @staticmethod
    def _swap_live_queue(channel: _Channel) -> asyncio.Queue:
        # registered at attach time so frames written before the first read still arrive
        queue: asyncio.Queue = asyncio.Queue()
        previous, channel.live_queue = channel.live_queue, queue
        if previous is not None:
            previous.put_nowait(_SUPERSEDED)
        if channel.closed:
            queue.put_nowait(_END)
        return queue

    async def _attach_passthrough(self, channel: _Channel, queue: asyncio.Queue) -> AsyncIterator[str]:
        try:
            while True:
                item = await queue.get()
                if item is _END or item is _SUPERSEDED:
                    return
                yield item
        finally:
            if channel.live_queue is queue:
                channel.live_queue = None

    async def _attach_durable(
        self, stream_id: str, channel: Optional[_Channel], epoch: int
    ) -> AsyncIterator[str]:
        cursor = -1
        if channel is not None:
            # wake the reader this one supersedes
            async with channel.cond:
                channel.cond.notify_all()

        # 1. replay whatever the log holds, stopping at the first gap
        try:
            for entry in await self._log.read(stream_id):
                if entry.seq != cursor + 1:
                    break
                cursor = entry.seq
                if entry.terminal:
                    return
                yield entry.frame
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Replay of stream {stream_id} from store failed, using memory: {e}")

        if channel is None:
            return

        if channel.reader_epoch != epoch:
            return

        # 2. follow live frames held in memory
        while True:
            async with channel.cond:
                while (
                    channel.reader_epoch == epoch
                    and not channel.closed
                    and len(channel.frames) <= cursor + 1
                ):
                    await channel.cond.wait()
                if channel.reader_epoch != epoch:
                    return
                pending = channel.frames[cursor + 1:]
                finished = channel.closed

            for frame in pending:
                cursor += 1
                yield frame
                if channel.reader_epoch != epoch:
                    return

            if finished and len(channel.frames) <= cursor + 1:
                return

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def discard(self, stream_id: str) -> None:
        """Forget a channel's in-memory state (the durable log is kept)."""
        self._channels.pop(stream_id, None)

    def _evict_closed(self) -> None:
        while len(self._channels) > self._max_retained:
            oldest_closed = next(
                (sid for sid, ch in self._channels.items() if ch.closed), None
            )
            if oldest_closed is None:
                return
            self._channels.pop(oldest_closed)

    async def aclose(self) -> None:
        if self._log is not None:
            await self._log.dispose()
