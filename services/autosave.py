"""
autosave.py
-----------
Debounced persistence of human edits to the artifact being viewed.

Typing calls `schedule()` repeatedly; only the last content before the debounce
window elapses is written. `flush()` writes the pending edit immediately; `drain()`
also waits for a write the timer already started, and is what
the state machine uses before a generation run may overwrite the content.
"""

import asyncio
import logging
import uuid
from typing import Optional, Union

from config import settings
from models.document import DocumentKind, VersionType
from services.document_store import DocumentStore, WriteResult, WriteStatus

logger = logging.getLogger(__name__)


class AutosaveScheduler:
    def __init__(self, store: DocumentStore, owner_id: int, delay: Optional[float] = None):
        self.store = store
        self.owner_id = owner_id
        self.delay = settings.AUTOSAVE_DELAY_SECONDS if delay is None else delay

        self.document_id: Optional[str] = None
        self.kind: DocumentKind = DocumentKind.TEXT
        self.title: str = ""

        self._pending: Optional[tuple[str, str]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def bind(self, document_id: Union[str, uuid.UUID], kind: Union[str, DocumentKind], title: str) -> None:
        """Target subsequent saves at `document_id`."""
        document_id = str(document_id)
        if self._pending is not None and document_id != self.document_id:
            logger.warning(
                f"Autosave rebound from {self.document_id} to {document_id} with an unsaved edit; "
                "the edit is discarded"
            )
            self.cancel()
        self.document_id = document_id
        self.kind = DocumentKind(kind)
        self.title = title

    def schedule(self, content: str, title: Optional[str] = None) -> None:
        """(Re)start the debounce timer for `content`."""
        if self.document_id is None:
            raise RuntimeError("AutosaveScheduler.schedule called before bind()")
        if title is not None:
            self.title = title
        self._pending = (content, self.title)
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error(f"Autosave of document {self.document_id} failed: {exc}", exc_info=exc)

    async def flush(self) -> Optional[WriteResult]:
        """Write the pending edit now. Returns None when nothing was pending."""
        self._cancel_timer()
        async with self._write_lock:
            if self._pending is None:
                return None
            content, title = self._pending
            self._pending = None
            return await self._write(content, title, VersionType.AUTOSAVE)

    async def drain(self) -> Optional[WriteResult]:
        """Wait for timer-started writes, then flush whatever is still pending."""
        self._cancel_timer()
        if self._tasks:
            # failures are logged by _on_flush_done
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return await self.flush()

    async def save_now(self, content: str, title: Optional[str] = None) -> WriteResult:
        """Explicit save; supersedes any pending autosave."""
        if self.document_id is None:
            raise RuntimeError("AutosaveScheduler.save_now called before bind()")
        if title is not None:
            self.title = title
        self._cancel_timer()
        async with self._write_lock:
            self._pending = None
            return await self._write(content, self.title, VersionType.EXPLICIT)

    def cancel(self) -> None:
        """Drop the pending edit and its timer."""
        self._cancel_timer()
        self._pending = None

    async def aclose(self) -> None:
        self.cancel()
        for task in list(self._tasks):
            await task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _write(self, content: str, title: str, version_type: VersionType) -> WriteResult:
        latest = await self.store.get_latest(self.document_id)
        if latest is not None and latest.content == content and latest.title == title:
            logger.debug(f"Document {self.document_id} unchanged; skipping {version_type.value}")
            return WriteResult(WriteStatus.UNCHANGED, document=latest)

        result = await self.store.save_document(
            document_id=self.document_id,
            title=title,
            content=content,
            kind=self.kind,
            owner_id=self.owner_id,
            version_type=version_type,
        )
        if not result.ok:
            logger.warning(f"Autosave of document {self.document_id} rejected: {result.reason}")
        return result
