"""
documents.py
------------
Routes for versioned documents.

Every save appends a version; reads return the latest version or the full history;
delete with a timestamp restores the version at that timestamp by dropping newer ones.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from schemas.document_schemas import DocumentCreate
from services.document_store import DocumentStore, WriteStatus
from utils.response_utils import create_standard_response
from utils.serializers import serialize_document, serialize_suggestion
from utils.service_deps import get_document_store

logger = logging.getLogger(__name__)
router = APIRouter()


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@router.get("", response_model=dict)
async def get_document(
    id: UUID = Query(..., description="Document id"),
    store: DocumentStore = Depends(get_document_store),
):
    """Latest version of a document."""
    document = await store.get_latest(id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return await create_standard_response(serialize_document(document))


@router.get("/versions", response_model=dict)
async def list_document_versions(
    id: UUID = Query(..., description="Document id"),
    store: DocumentStore = Depends(get_document_store),
):
    """Every version of a document, oldest first."""
    versions = await store.list_versions(id)
    if not versions:
        raise HTTPException(status_code=404, detail="Document not found")
    return await create_standard_response(
        {"versions": [serialize_document(v) for v in versions], "count": len(versions)}
    )


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def save_document(
    document_data: DocumentCreate,
    id: UUID = Query(..., description="Document id"),
    store: DocumentStore = Depends(get_document_store),
):
    """Append a new version of a document."""
    result = await store.save_document(
        document_id=id,
        title=document_data.title,
        content=document_data.content,
        kind=document_data.kind,
        owner_id=document_data.owner_id,
        version_type=document_data.version_type,
    )
    if result.status is WriteStatus.REJECTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Document could not be saved: {result.reason}",
        )
    return await create_standard_response(
        serialize_document(result.document),
        "Document saved successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.delete("", response_model=dict)
async def delete_document(
    id: UUID = Query(..., description="Document id"),
    timestamp: Optional[datetime] = Query(
        None, description="Keep versions up to and including this timestamp"
    ),
    store: DocumentStore = Depends(get_document_store),
):
    """Restore an older version (with `timestamp`) or delete the whole document."""
    if timestamp is not None:
        deleted = await store.delete_versions_after(id, _as_naive_utc(timestamp))
        latest = await store.get_latest(id)
        return await create_standard_response(
            {
                "deleted": deleted,
                "current": serialize_document(latest) if latest is not None else None,
            },
            "Document restored successfully",
        )

    deleted = await store.delete_document(id)
    if deleted == 0:
        raise HTTPException(status_code=404, detail="Document not found")
    return await create_standard_response({"deleted": deleted}, "Document deleted successfully")


@router.get("/suggestions", response_model=dict)
async def list_suggestions(
    id: UUID = Query(..., description="Document id"),
    store: DocumentStore = Depends(get_document_store),
):
    suggestions = await store.get_suggestions(id)
    return await create_standard_response(
        {"suggestions": [serialize_suggestion(s) for s in suggestions]}
    )
