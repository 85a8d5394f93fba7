"""
artifact_state.py
-----------------
Consumer-side reducer for one artifact panel.

Folds stream events (from a bridge feed) and local edits into an `ArtifactState`,
and decides when edits are persisted through the `AutosaveScheduler`.

Status moves through::

    init -> streaming -> idle -> (updated -> idle)* -> streaming -> ...

A document opened from storage goes straight from init to idle. While streaming,
human edits are rejected so they never interleave with generated content; pending
edits are flushed before a new run starts.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Optional, Union

from config import settings
from models.document import DocumentKind
from schemas.stream_events import EventType, StreamEvent, SuggestionPayload
from services.autosave import AutosaveScheduler
from services.document_store import WriteResult
from utils.event_codec import adecode_stream
from utils.serializers import utc_now

logger = logging.getLogger(__name__)


class ArtifactStatus(str, enum.Enum):
    INIT = "init"
    STREAMING = "streaming"
    IDLE = "idle"
    UPDATED = "updated"


ALLOWED_TRANSITIONS = {
    (ArtifactStatus.INIT, ArtifactStatus.STREAMING),
    (ArtifactStatus.INIT, ArtifactStatus.IDLE),
    (ArtifactStatus.STREAMING, ArtifactStatus.IDLE),
    (ArtifactStatus.IDLE, ArtifactStatus.STREAMING),
    (ArtifactStatus.IDLE, ArtifactStatus.UPDATED),
    (ArtifactStatus.UPDATED, ArtifactStatus.IDLE),
    (ArtifactStatus.UPDATED, ArtifactStatus.STREAMING),
}


class InvalidTransitionError(RuntimeError):
    pass


@dataclass
class Transition:
    source: ArtifactStatus
    target: ArtifactStatus
    reason: str
    flushed: bool = False
    at: object = field(default_factory=utc_now)


@dataclass
class ArtifactState:
    document_id: Optional[str] = None
    kind: DocumentKind = DocumentKind.TEXT
    title: str = ""
    content: str = ""
    status: ArtifactStatus = ArtifactStatus.INIT
    is_visible: bool = False
    suggestions: list[SuggestionPayload] = field(default_factory=list)
    prose: str = ""
    history: list[Transition] = field(default_factory=list)


class ArtifactStateMachine:
    def __init__(
        self,
        autosave: AutosaveScheduler,
        updated_display_seconds: Optional[float] = None,
        state: Optional[ArtifactState] = None,
    ):
        self.autosave = autosave
        self.updated_display_seconds = (
            settings.UPDATED_DISPLAY_SECONDS
            if updated_display_seconds is None
            else updated_display_seconds
        )
        self.state = state or ArtifactState()
        self._updated_deferred = False
        self._updated_timer: Optional[asyncio.TimerHandle] = None

    @property
    def status(self) -> ArtifactStatus:
        return self.state.status

    def _transition(self, target: ArtifactStatus, reason: str, flushed: bool = False) -> None:
        source = self.state.status
        if (source, target) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(f"{source.value} -> {target.value} ({reason})")
        self.state.status = target
        self.state.history.append(Transition(source, target, reason, flushed))
        logger.debug(f"Artifact {self.state.document_id}: {source.value} -> {target.value} ({reason})")

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------
    def open_document(
        self, document_id: str, kind: Union[str, DocumentKind], title: str, content: str
    ) -> None:
        """Show a stored document for viewing and editing."""
        self.state.document_id = str(document_id)
        self.state.kind = DocumentKind(kind)
        self.state.title = title
        self.state.content = content or ""
        self.state.is_visible = True
        self.autosave.bind(self.state.document_id, self.state.kind, title)
        if self.state.status is ArtifactStatus.INIT:
            self._transition(ArtifactStatus.IDLE, "open")

    async def close(self) -> Optional[WriteResult]:
        """Flush pending edits, stop timers and hide the artifact."""
        result = await self.autosave.flush()
        self.autosave.cancel()
        self._cancel_updated_timer()
        self.state.is_visible = False
        return result

    # ------------------------------------------------------------------
    # Stream events
    # ------------------------------------------------------------------
    async def apply(self, event: StreamEvent) -> None:
        etype = event.type
        if etype is EventType.TEXT_DELTA:
            self.state.prose += event.data
        elif etype is EventType.KIND:
            await self._begin_run("kind")
            self.state.kind = DocumentKind(event.data)
            self.state.suggestions = []
        elif etype is EventType.ID:
            await self._begin_run("id")
            self.state.document_id = event.data
            self.state.is_visible = True
        elif etype in (EventType.TITLE, EventType.CONTENT):
            if self.state.document_id is None:
                logger.info(f"Ignoring {etype.value} event received before a document id")
                return
            await self._begin_run(etype.value)
            if etype is EventType.TITLE:
                self.state.title = event.data
            else:
                self.state.content = event.data
                self.state.is_visible = True
        elif etype is EventType.SUGGESTION:
            if self.state.document_id is None:
                logger.warning("Dropping suggestion event received before a document id")
                return
            self.state.suggestions.append(event.data)
        elif etype is EventType.UPDATED:
            if self.state.status is ArtifactStatus.INIT:
                logger.warning("Dropping updated event received before any run")
                return
            if self.state.status is ArtifactStatus.STREAMING:
                self._updated_deferred = True
            else:
                self._mark_updated()
        elif etype is EventType.FINISH:
            self.finish_stream()

    async def _begin_run(self, reason: str) -> None:
        if self.state.status is ArtifactStatus.STREAMING:
            return
        # waits for a write the debounce timer already started as well as pending edits
        await self.autosave.drain()
        self.autosave.cancel()
        self._cancel_updated_timer()
        self._updated_deferred = False
        self._transition(ArtifactStatus.STREAMING, reason, flushed=True)

    def finish_stream(self) -> None:
        """End the current run (explicit finish event or transport closure)."""
        if self.state.status is not ArtifactStatus.STREAMING:
            return
        self._transition(ArtifactStatus.IDLE, "finish")
        if self.state.document_id is not None:
            self.autosave.bind(self.state.document_id, self.state.kind, self.state.title)
        if self._updated_deferred:
            self._updated_deferred = False
            self._mark_updated()

    async def consume(self, feed: AsyncIterable[Union[str, bytes]]) -> ArtifactState:
        """Apply every frame of `feed` in order; the feed ending finishes the run."""
        try:
            async for event in adecode_stream(feed):
                await self.apply(event)
        finally:
            self.finish_stream()
        return self.state

    # ------------------------------------------------------------------
    # "updated" indicator
    # ------------------------------------------------------------------
    def _mark_updated(self) -> None:
        if self.state.status is ArtifactStatus.UPDATED:
            self._cancel_updated_timer()
        elif self.state.status is not ArtifactStatus.IDLE:
            logger.warning(f"Cannot mark {self.state.document_id} updated while {self.state.status.value}")
            return
        else:
            self._transition(ArtifactStatus.UPDATED, "saved")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._updated_timer = loop.call_later(self.updated_display_seconds, self.clear_updated)

    def clear_updated(self) -> None:
        self._cancel_updated_timer()
        if self.state.status is ArtifactStatus.UPDATED:
            self._transition(ArtifactStatus.IDLE, "updated_expired")

    def _cancel_updated_timer(self) -> None:
        if self._updated_timer is not None:
            self._updated_timer.cancel()
            self._updated_timer = None

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------
    def _can_edit(self, what: str) -> bool:
        if self.state.status is ArtifactStatus.STREAMING:
            logger.info(f"Rejected {what} edit on {self.state.document_id}: generation in progress")
            return False
        if self.state.document_id is None:
            logger.info(f"Rejected {what} edit: no document is open")
            return False
        return True

    def edit_content(self, content: str) -> bool:
        if not self._can_edit("content"):
            return False
        self.state.content = content
        self.autosave.schedule(content, self.state.title)
        return True

    def edit_title(self, title: str) -> bool:
        if not self._can_edit("title"):
            return False
        self.state.title = title
        self.autosave.schedule(self.state.content, title)
        return True

    async def save_now(self) -> Optional[WriteResult]:
        if not self._can_edit("explicit save"):
            return None
        return await self.autosave.save_now(self.state.content, self.state.title)
