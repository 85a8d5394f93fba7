"""
document_schemas.py
-------------------
Request/response models for the versioned document endpoints.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.document import DocumentKind, VersionType

# region Document Models


class DocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    content: Optional[str] = None
    kind: DocumentKind = DocumentKind.TEXT
    version_type: VersionType = VersionType.EXPLICIT
    owner_id: int


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime
    title: str
    content: Optional[str] = None
    kind: DocumentKind
    owner_id: int
    is_autosave: bool
    version_type: VersionType


# endregion
