"""
serializers.py
-------------
Provides standardized functions for serializing database models to dictionaries.
Ensures consistent response formats across endpoints and tool results.
"""

from datetime import datetime, date, timezone
from enum import Enum
from typing import Any, Optional, Union, Mapping
from sqlalchemy import MetaData
from uuid import UUID

from models.document import Document
from models.suggestion import Suggestion


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def serialize_datetime(dt: Optional[Union[datetime, str]]) -> Optional[str]:
    """Convert datetime or ISO string to ISO format string"""
    if dt is None:
        return None

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt)
        except ValueError:
            return dt

    return dt.isoformat()


def serialize_uuid(id_value: Any) -> Optional[str]:
    """Convert UUID to string if not None"""
    if id_value is not None:
        return str(id_value)
    return None


def serialize_document(document: Document, include_content: bool = True) -> dict[str, Any]:
    """
    Serialize one Document version.

    Args:
        document: Document database model
        include_content: False to return metadata only (listing views)
    """
    data = {
        "id": serialize_uuid(document.id),
        "created_at": serialize_datetime(document.created_at),
        "updated_at": serialize_datetime(document.updated_at),
        "title": document.title,
        "kind": document.kind,
        "owner_id": document.owner_id,
        "is_autosave": document.is_autosave,
        "version_type": document.version_type,
    }
    if include_content:
        data["content"] = document.content
    return data


def serialize_suggestion(suggestion: Suggestion) -> dict[str, Any]:
    return {
        "id": serialize_uuid(suggestion.id),
        "document_id": serialize_uuid(suggestion.document_id),
        "document_created_at": serialize_datetime(suggestion.document_created_at),
        "original_text": suggestion.original_text,
        "suggested_text": suggestion.suggested_text,
        "description": suggestion.description,
        "is_resolved": suggestion.is_resolved,
        "owner_id": suggestion.owner_id,
        "created_at": serialize_datetime(suggestion.created_at),
    }


def to_serialisable(obj):  # noqa: N802  (keep snake-case for local helper)
    """Recursively convert ORM instances / collections to JSON-safe data."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return serialize_datetime(obj)
    if isinstance(obj, UUID):
        return serialize_uuid(obj)

    if isinstance(obj, MetaData):
        return None

    if isinstance(obj, (list, tuple, set)):
        return [to_serialisable(x) for x in obj]

    if isinstance(obj, Mapping):
        return {k: to_serialisable(v) for k, v in obj.items()}

    # SQLAlchemy mapped instance (has __table__)
    if hasattr(obj, "__table__"):
        return {
            col.name: to_serialisable(getattr(obj, col.name))
            for col in obj.__table__.columns
        }

    # pydantic models
    if hasattr(obj, "model_dump"):
        return to_serialisable(obj.model_dump())

    return str(obj)
