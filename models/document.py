"""
document.py
-----------
Defines the Document model: one immutable snapshot of a named, typed artifact.

A document family shares `id`; each save appends a row keyed by `(id, created_at)`.
The current version of a family is the row with the latest `created_at`.
"""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from db import Base

if TYPE_CHECKING:
    from models.user import User


class DocumentKind(str, enum.Enum):
    TEXT = "text"
    CODE = "code"
    SHEET = "sheet"
    IMAGE = "image"


class VersionType(str, enum.Enum):
    AUTOSAVE = "autosave"
    EXPLICIT = "explicit"
    AI_UPDATE = "ai_update"


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('text', 'code', 'sheet', 'image')", name="valid_document_kind"
        ),
        CheckConstraint(
            "version_type IN ('autosave', 'explicit', 'ai_update')",
            name="valid_version_type",
        ),
        Index("ix_documents_id_created_at", "id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=False), primary_key=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentKind.TEXT.value
    )
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), nullable=False)
    is_autosave: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VersionType.AUTOSAVE.value
    )

    owner: Mapped["User"] = relationship(back_populates="documents")

    def __repr__(self) -> str:
        return f"<Document {self.id} @ {self.created_at} kind={self.kind} type={self.version_type}>"
