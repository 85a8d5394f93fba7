"""
document_store.py
-----------------
Append-only, versioned persistence for documents (and the suggestions attached to
document versions).

Every save appends a new `(id, created_at)` row; nothing is ever updated in place.
Readers resolve the current version by taking the latest `created_at` for an id.

Writes referencing an unknown owner are not dropped silently: they come back as a
`WriteResult` with status `rejected` so callers can surface the failure.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.document import Document, DocumentKind, VersionType
from models.suggestion import Suggestion
from models.user import User
from utils.sentry_utils import sentry_span_context
from utils.serializers import utc_now

logger = logging.getLogger(__name__)

MAX_APPEND_ATTEMPTS = 3


class WriteStatus(str, enum.Enum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    REJECTED = "rejected"


@dataclass
class WriteResult:
    status: WriteStatus
    document: Optional[Document] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not WriteStatus.REJECTED


def coerce_document_id(document_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    """Parse a document id, returning None for anything that is not a UUID."""
    if isinstance(document_id, uuid.UUID):
        return document_id
    try:
        return uuid.UUID(str(document_id))
    except ValueError:
        return None


class DocumentStore:
    """Versioned document repository bound to an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def save_document(
        self,
        *,
        document_id: Union[str, uuid.UUID],
        title: str,
        content: Optional[str],
        kind: Union[str, DocumentKind],
        owner_id: int,
        version_type: Union[str, VersionType] = VersionType.AUTOSAVE,
    ) -> WriteResult:
        """
        Append a new version of `document_id`.

        The new row's `created_at` is strictly greater than every existing row of the
        family, so version order is total even when the clock does not advance.
        """
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            raise ValueError(f"Invalid document id: {document_id!r}")
        kind_value = DocumentKind(kind).value
        version_value = VersionType(version_type).value

        with sentry_span_context("db.document", "save_document", version_type=version_value):
            async with self.session_factory() as session:
                if await session.get(User, owner_id) is None:
                    logger.warning(
                        f"Rejected write for document {doc_uuid}: unknown owner {owner_id}"
                    )
                    return WriteResult(WriteStatus.REJECTED, reason="unknown_owner")

                for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
                    created_at = await self._next_version_timestamp(session, doc_uuid)
                    document = Document(
                        id=doc_uuid,
                        created_at=created_at,
                        title=title,
                        content=content,
                        kind=kind_value,
                        owner_id=owner_id,
                        updated_at=created_at,
                        is_autosave=version_value == VersionType.AUTOSAVE.value,
                        version_type=version_value,
                    )
                    session.add(document)
                    try:
                        await session.commit()
                    except IntegrityError as exc:
                        await session.rollback()
                        if await session.get(User, owner_id) is None:
                            logger.warning(
                                f"Rejected write for document {doc_uuid}: owner {owner_id} vanished"
                            )
                            return WriteResult(WriteStatus.REJECTED, reason="unknown_owner")
                        logger.info(
                            f"Version timestamp collision on {doc_uuid} "
                            f"(attempt {attempt}/{MAX_APPEND_ATTEMPTS}): {exc.orig}"
                        )
                        continue

                    logger.info(
                        f"Saved document {doc_uuid} version {created_at.isoformat()} "
                        f"({version_value}, {len(content or '')} chars)"
                    )
                    return WriteResult(WriteStatus.CREATED, document=document)

        logger.error(f"Could not append version for document {doc_uuid}")
        return WriteResult(WriteStatus.REJECTED, reason="version_conflict")

    async def _next_version_timestamp(self, session: AsyncSession, doc_uuid: uuid.UUID) -> datetime:
        latest = await session.scalar(
            select(func.max(Document.created_at)).where(Document.id == doc_uuid)
        )
        now = utc_now()
        if latest is not None and now <= latest:
            now = latest + timedelta(microseconds=1)
        return now

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_latest(self, document_id: Union[str, uuid.UUID]) -> Optional[Document]:
        """Return the current version of a document, or None."""
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            return None
        async with self.session_factory() as session:
            result = await session.execute(
                select(Document)
                .where(Document.id == doc_uuid)
                .order_by(Document.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_versions(self, document_id: Union[str, uuid.UUID]) -> list[Document]:
        """All versions of a document, oldest first."""
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(Document)
                .where(Document.id == doc_uuid)
                .order_by(Document.created_at.asc())
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------
    async def delete_versions_after(
        self, document_id: Union[str, uuid.UUID], timestamp: datetime
    ) -> int:
        """Drop every version newer than `timestamp` (restores an older version)."""
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            return 0
        async with self.session_factory() as session:
            await session.execute(
                delete(Suggestion).where(
                    Suggestion.document_id == doc_uuid,
                    Suggestion.document_created_at > timestamp,
                )
            )
            result = await session.execute(
                delete(Document).where(
                    Document.id == doc_uuid, Document.created_at > timestamp
                )
            )
            await session.commit()
        logger.info(f"Deleted {result.rowcount} versions of {doc_uuid} after {timestamp.isoformat()}")
        return result.rowcount

    async def delete_document(self, document_id: Union[str, uuid.UUID]) -> int:
        """Delete the whole version family of a document."""
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            return 0
        async with self.session_factory() as session:
            await session.execute(delete(Suggestion).where(Suggestion.document_id == doc_uuid))
            result = await session.execute(delete(Document).where(Document.id == doc_uuid))
            await session.commit()
        logger.info(f"Deleted document {doc_uuid} ({result.rowcount} versions)")
        return result.rowcount

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------
    async def save_suggestions(self, suggestions: Sequence[dict]) -> list[Suggestion]:
        """
        Persist suggestions against a document version.

        Each mapping needs `document_id`, `document_created_at`, `original_text`,
        `suggested_text` and `owner_id`; `id` and `description` are optional.
        """
        rows = [
            Suggestion(
                id=coerce_document_id(s["id"]) if s.get("id") else uuid.uuid4(),
                document_id=coerce_document_id(s["document_id"]),
                document_created_at=s["document_created_at"],
                original_text=s["original_text"],
                suggested_text=s["suggested_text"],
                description=s.get("description"),
                is_resolved=False,
                owner_id=s["owner_id"],
                created_at=utc_now(),
            )
            for s in suggestions
        ]
        if not rows:
            return []
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    async def get_suggestions(self, document_id: Union[str, uuid.UUID]) -> list[Suggestion]:
        doc_uuid = coerce_document_id(document_id)
        if doc_uuid is None:
            return []
        async with self.session_factory() as session:
            result = await session.execute(
                select(Suggestion)
                .where(Suggestion.document_id == doc_uuid)
                .order_by(Suggestion.created_at.asc())
            )
            return list(result.scalars().all())
