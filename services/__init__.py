"""
Services package initialization.
Exposes the document store, stream bridge and generation helpers.
"""

from services.document_store import DocumentStore, WriteResult, WriteStatus
from services.stream_bridge import BridgeMode, ChannelError, StreamBridge, StreamSink
from services.stream_records import StreamRecordStore

__all__ = [
    # Documents
    "DocumentStore",
    "WriteResult",
    "WriteStatus",
    # Streams
    "BridgeMode",
    "ChannelError",
    "StreamBridge",
    "StreamSink",
    "StreamRecordStore",
]
