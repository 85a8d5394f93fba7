"""Consolidated imports for SQLAlchemy models."""

from .user import User
from .document import Document, DocumentKind, VersionType
from .stream import Stream, StreamLogEntry, StreamLogBase
from .suggestion import Suggestion
