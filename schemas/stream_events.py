"""schemas/stream_events.py
==========================
Typed events exchanged between a generation run and artifact consumers.

Every event is `{type, data, transient}`. `data-*` types drive the artifact panel;
`text-delta` carries conversational prose shown outside the artifact. `data-content`
always carries the complete content, never a patch.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from models.document import DocumentKind


class EventType(str, Enum):
    KIND = "data-kind"
    ID = "data-id"
    TITLE = "data-title"
    CONTENT = "data-content"
    SUGGESTION = "data-suggestion"
    UPDATED = "data-updated"
    FINISH = "data-finish"
    TEXT_DELTA = "text-delta"


STRING_PAYLOAD_TYPES = {EventType.ID, EventType.TITLE, EventType.CONTENT, EventType.TEXT_DELTA}
EMPTY_PAYLOAD_TYPES = {EventType.UPDATED, EventType.FINISH}


class SuggestionPayload(BaseModel):
    """An inline editorial note over `[start, end)` of the document content."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    document_id: str = Field(..., alias="documentId")
    original_text: str = Field(..., alias="originalText")
    suggested_text: str = Field(..., alias="suggestedText")
    description: Optional[str] = None
    start: Optional[int] = Field(None, ge=0)
    end: Optional[int] = Field(None, ge=0)
    is_resolved: bool = Field(False, alias="isResolved")

    @model_validator(mode="after")
    def _check_range(self):
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("suggestion range end precedes start")
        return self


class StreamEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    data: Any = Field(None, validate_default=True)
    transient: bool = False

    @field_validator("data")
    @classmethod
    def _check_payload(cls, value: Any, info: ValidationInfo) -> Any:
        event_type = info.data.get("type")
        if event_type is EventType.KIND:
            return DocumentKind(value).value
        if event_type in STRING_PAYLOAD_TYPES:
            if not isinstance(value, str):
                raise ValueError(f"{event_type.value} expects a string payload")
            return value
        if event_type is EventType.SUGGESTION:
            if isinstance(value, SuggestionPayload):
                return value
            return SuggestionPayload.model_validate(value)
        if event_type in EMPTY_PAYLOAD_TYPES:
            return None
        return value


def make_event(event_type: EventType, data: Any = None, transient: bool = True) -> StreamEvent:
    """Build an event; artifact signals are transient unless stated otherwise."""
    return StreamEvent(type=event_type, data=data, transient=transient)
