"""
kind_handlers.py
----------------
Per-kind content handlers invoked by the document tools.

The registry is a closed mapping from `DocumentKind` to handler, built once at
startup and checked so that every kind has exactly one handler.
"""

import logging
import re
from typing import Iterable, Mapping, Optional, Union

from models.document import Document, DocumentKind

logger = logging.getLogger(__name__)


class HandlerConfigurationError(RuntimeError):
    """No handler is registered for a document kind."""


class KindHandler:
    kind: DocumentKind

    async def on_create(self, document_id: str, title: str, content: Optional[str]) -> str:
        return self.normalize(content)

    async def on_update(self, document: Document, new_content: Optional[str]) -> str:
        return self.normalize(new_content)

    def normalize(self, content: Optional[str]) -> str:
        raise NotImplementedError


class TextHandler(KindHandler):
    kind = DocumentKind.TEXT

    def normalize(self, content: Optional[str]) -> str:
        if content is None:
            raise ValueError("Text documents require content")
        return content


class CodeHandler(KindHandler):
    kind = DocumentKind.CODE

    def normalize(self, content: Optional[str]) -> str:
        code = (content or "").replace("\r\n", "\n").replace("\r", "\n")
        if code and not code.endswith("\n"):
            code += "\n"
        return code


class SheetHandler(KindHandler):
    kind = DocumentKind.SHEET

    _BLANK_ROW = re.compile(r"^[\s,]*$")

    def normalize(self, content: Optional[str]) -> str:
        rows = (content or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
        while rows and self._BLANK_ROW.match(rows[-1]):
            rows.pop()
        return "\n".join(rows)


class ImageHandler(KindHandler):
    kind = DocumentKind.IMAGE

    def normalize(self, content: Optional[str]) -> str:
        # base64 payload
        return re.sub(r"\s+", "", content or "")


DEFAULT_HANDLERS = (TextHandler(), CodeHandler(), SheetHandler(), ImageHandler())


class HandlerRegistry:
    def __init__(self, handlers: Mapping[DocumentKind, KindHandler], *, require_all: bool = True):
        self._handlers = dict(handlers)
        if require_all:
            missing = [k.value for k in DocumentKind if k not in self._handlers]
            if missing:
                raise HandlerConfigurationError(
                    f"No handler registered for document kind(s): {', '.join(missing)}"
                )

    def get(self, kind: Union[str, DocumentKind]) -> KindHandler:
        try:
            handler = self._handlers.get(DocumentKind(kind))
        except ValueError:
            handler = None
        if handler is None:
            logger.error(f"No handler registered for document kind {kind!r}")
            raise HandlerConfigurationError(f"No handler registered for document kind {kind!r}")
        return handler


def build_handler_registry(
    handlers: Optional[Iterable[KindHandler]] = None, *, require_all: bool = True
) -> HandlerRegistry:
    handlers = DEFAULT_HANDLERS if handlers is None else tuple(handlers)
    mapping: dict[DocumentKind, KindHandler] = {}
    for handler in handlers:
        if handler.kind in mapping:
            raise HandlerConfigurationError(f"Duplicate handler for document kind {handler.kind.value}")
        mapping[handler.kind] = handler
    return HandlerRegistry(mapping, require_all=require_all)
