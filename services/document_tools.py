"""
document_tools.py
-----------------
Tool operations a generation run calls to create, update, annotate and read documents.

Each operation streams its effect to the artifact panel through the run's sink and
returns a small JSON-ready result for the model. Lookups that fail come back as
`{"error": ...}` results rather than exceptions; a missing kind handler is a
configuration fault and raises `HandlerConfigurationError`.
"""

import logging
import uuid
from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from models.document import DocumentKind, VersionType
from schemas.stream_events import EventType, SuggestionPayload, make_event
from services.document_store import DocumentStore
from services.kind_handlers import HandlerRegistry
from services.stream_bridge import StreamSink
from utils.serializers import serialize_datetime

logger = logging.getLogger(__name__)

NOT_FOUND = {"error": "Document not found"}


class DocumentToolkit:
    def __init__(
        self,
        store: DocumentStore,
        registry: HandlerRegistry,
        sink: StreamSink,
        owner_id: int,
    ):
        self.store = store
        self.registry = registry
        self.sink = sink
        self.owner_id = owner_id

    async def _emit(self, event_type: EventType, data: Any = None) -> None:
        await self.sink.write(make_event(event_type, data, transient=True))

    async def create_document(self, title: str, kind: str, content: Optional[str] = None) -> dict:
        try:
            doc_kind = DocumentKind(kind)
        except ValueError:
            return {"error": f"Unsupported document kind: {kind}"}
        handler = self.registry.get(doc_kind)
        document_id = str(uuid.uuid4())

        await self._emit(EventType.KIND, doc_kind.value)
        await self._emit(EventType.ID, document_id)
        await self._emit(EventType.TITLE, title)

        body = await handler.on_create(document_id, title, content)
        await self._emit(EventType.CONTENT, body)

        result = await self.store.save_document(
            document_id=document_id,
            title=title,
            content=body,
            kind=doc_kind,
            owner_id=self.owner_id,
            version_type=VersionType.EXPLICIT,
        )
        if not result.ok:
            logger.warning(f"create_document {document_id} not saved: {result.reason}")
            return {"id": document_id, "error": "Document could not be saved"}

        return {
            "id": document_id,
            "title": title,
            "kind": doc_kind.value,
            "content": "Document created successfully.",
        }

    async def update_document(self, id: str, content: str, title: Optional[str] = None) -> dict:
        existing = await self.store.get_latest(id)
        if existing is None:
            logger.info(f"update_document: no document {id}")
            return dict(NOT_FOUND)

        handler = self.registry.get(existing.kind)
        new_title = title if title is not None else existing.title
        # normalize before emitting so a rejected body leaves the panel untouched
        body = await handler.on_update(existing, content)

        if title is not None:
            await self._emit(EventType.TITLE, title)
        await self._emit(EventType.CONTENT, body)

        result = await self.store.save_document(
            document_id=existing.id,
            title=new_title,
            content=body,
            kind=existing.kind,
            owner_id=self.owner_id,
            version_type=VersionType.AI_UPDATE,
        )
        if not result.ok:
            logger.warning(f"update_document {id} not saved: {result.reason}")
            return {"id": str(existing.id), "error": "Document could not be saved"}

        await self._emit(EventType.UPDATED)
        return {
            "id": str(existing.id),
            "title": new_title,
            "kind": existing.kind,
            "content": "Document updated successfully.",
        }

    async def request_suggestions(self, id: str, suggestions: Sequence[Mapping[str, Any]]) -> dict:
        """
        Attach editorial suggestions to the latest version of a document.

        Each item carries `original_text`, `suggested_text` and an optional
        `description`. Suggestions stream to the panel as `data-suggestion` events
        and are persisted so `/api/document/suggestions` can list them later.
        """
        document = await self.store.get_latest(id)
        if document is None:
            return dict(NOT_FOUND)

        try:
            payloads = [
                self._suggestion_payload(document.id, document.content, item)
                for item in suggestions
            ]
        except (ValidationError, AttributeError) as e:
            logger.warning(f"request_suggestions on {id}: invalid suggestion: {e}")
            return {"id": str(document.id), "error": "Invalid suggestion"}

        for payload in payloads:
            await self._emit(EventType.SUGGESTION, payload)

        await self.store.save_suggestions(
            [
                {
                    "id": p.id,
                    "document_id": document.id,
                    "document_created_at": document.created_at,
                    "original_text": p.original_text,
                    "suggested_text": p.suggested_text,
                    "description": p.description,
                    "owner_id": self.owner_id,
                }
                for p in payloads
            ]
        )
        return {
            "id": str(document.id),
            "title": document.title,
            "kind": document.kind,
            "message": f"{len(payloads)} suggestions have been added to the document",
        }

    @staticmethod
    def _suggestion_payload(
        document_id: uuid.UUID, content: str, item: Mapping[str, Any]
    ) -> SuggestionPayload:
        original = item.get("original_text")
        start = (content or "").find(original) if isinstance(original, str) and original else -1
        return SuggestionPayload(
            id=str(uuid.uuid4()),
            document_id=str(document_id),
            original_text=original,
            suggested_text=item.get("suggested_text"),
            description=item.get("description"),
            start=start if start >= 0 else None,
            end=start + len(original) if start >= 0 else None,
        )

    async def get_document(self, id: str) -> dict:
        document = await self.store.get_latest(id)
        if document is None:
            return dict(NOT_FOUND)
        return {
            "id": str(document.id),
            "title": document.title,
            "kind": document.kind,
            "content": document.content,
            "created_at": serialize_datetime(document.created_at),
        }
