"""
utils/service_deps.py
---------------------
FastAPI dependencies resolving the services built in `main.lifespan` and held on
`app.state`.
"""

from fastapi import Request

from services.document_store import DocumentStore
from services.kind_handlers import HandlerRegistry
from services.stream_bridge import StreamBridge
from services.stream_records import StreamRecordStore


def get_bridge(request: Request) -> StreamBridge:
    return request.app.state.bridge


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_stream_records(request: Request) -> StreamRecordStore:
    return request.app.state.stream_records


def get_handler_registry(request: Request) -> HandlerRegistry:
    return request.app.state.handler_registry
