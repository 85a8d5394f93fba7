"""
test_routes.py
--------------
HTTP surface: document endpoints, SSE stream endpoints, health and error envelopes.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from main import create_app
from schemas.stream_events import EventType, make_event
from services.document_tools import DocumentToolkit
from services.generation import run_generation
from services.kind_handlers import HandlerConfigurationError
from services.stream_bridge import StreamSink


@pytest.fixture
async def app(engine):
    application = create_app(engine=engine, create_tables=False)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def durable_app(engine, stream_log):
    application = create_app(engine=engine, stream_log=stream_log, create_tables=False)
    async with application.router.lifespan_context(application):
        yield application


def _client(application):
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=application, raise_app_exceptions=False),
        base_url="http://testserver",
    )


@pytest.mark.asyncio
async def test_health_reports_stream_mode(app, durable_app):
    async with _client(app) as client:
        body = (await client.get("/health")).json()
    assert body["status"] == "healthy"
    assert body["db_available"] is True
    assert body["stream_mode"] == "passthrough"

    async with _client(durable_app) as client:
        assert (await client.get("/health")).json()["stream_mode"] == "durable"


@pytest.mark.asyncio
async def test_document_lifecycle(app, user):
    doc_id = str(uuid.uuid4())
    async with _client(app) as client:
        resp = await client.post(
            "/api/document",
            params={"id": doc_id},
            json={"title": "Plan", "content": "v1", "kind": "text", "owner_id": user.id},
        )
        assert resp.status_code == 201
        envelope = resp.json()
        assert envelope["status"] == "success"
        assert envelope["request_id"] == resp.headers["X-Request-ID"]
        first_created = envelope["data"]["created_at"]

        await client.post(
            "/api/document",
            params={"id": doc_id},
            json={
                "title": "Plan",
                "content": "v2",
                "kind": "text",
                "owner_id": user.id,
                "version_type": "autosave",
            },
        )

        latest = (await client.get("/api/document", params={"id": doc_id})).json()["data"]
        assert latest["content"] == "v2"
        assert latest["version_type"] == "autosave"

        versions = (await client.get("/api/document/versions", params={"id": doc_id})).json()
        assert [v["content"] for v in versions["data"]["versions"]] == ["v1", "v2"]

        restored = await client.delete(
            "/api/document", params={"id": doc_id, "timestamp": first_created}
        )
        assert restored.json()["data"]["deleted"] == 1
        assert restored.json()["data"]["current"]["content"] == "v1"

        assert (await client.delete("/api/document", params={"id": doc_id})).status_code == 200
        missing = await client.get("/api/document", params={"id": doc_id})
        assert missing.status_code == 404
        assert missing.json()["status"] == "error"


@pytest.mark.asyncio
async def test_unknown_owner_is_conflict(app):
    async with _client(app) as client:
        resp = await client.post(
            "/api/document",
            params={"id": str(uuid.uuid4())},
            json={"title": "x", "content": "x", "kind": "text", "owner_id": 777},
        )
    assert resp.status_code == 409
    assert "unknown_owner" in resp.json()["message"]


@pytest.mark.asyncio
async def test_invalid_document_id_is_rejected(app):
    async with _client(app) as client:
        assert (await client.get("/api/document", params={"id": "nope"})).status_code == 422


@pytest.mark.asyncio
async def test_chat_stream_resumes_latest_run(durable_app):
    bridge = durable_app.state.bridge
    records = durable_app.state.stream_records

    async def producer(sink):
        await sink.write(make_event(EventType.KIND, "text"))
        await sink.write(make_event(EventType.ID, "doc-1"))

    await run_generation(bridge, records, "chat-1", producer, stream_id="run-1")

    async with _client(durable_app) as client:
        resp = await client.get("/api/chat/chat-1/stream")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["X-Stream-Mode"] == "durable"
        lines = [line for line in resp.text.split("\n") if line]
        assert len(lines) == 3
        assert all(line.startswith("data: ") for line in lines)
        assert '"data-finish"' in lines[-1]

        direct = await client.get("/api/streams/run-1")
        assert direct.text == resp.text

        none = await client.get("/api/chat/other-chat/stream")
        assert none.status_code == 204


@pytest.mark.asyncio
async def test_handler_configuration_error_is_retryable_500(app):
    @app.get("/boom")
    async def boom():
        raise HandlerConfigurationError("no handler for sheet")

    async with _client(app) as client:
        resp = await client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["data"]["retryable"] is True
    assert "sheet" not in body["message"]


@pytest.mark.asyncio
async def test_suggestions_from_tool_are_listed(app, user):
    sink = MagicMock(spec=StreamSink)
    sink.write = AsyncMock()
    toolkit = DocumentToolkit(
        app.state.document_store, app.state.handler_registry, sink, owner_id=user.id
    )
    created = await toolkit.create_document("Essay", "text", "teh start")
    await toolkit.request_suggestions(
        created["id"], [{"original_text": "teh", "suggested_text": "the"}]
    )

    async with _client(app) as client:
        resp = await client.get("/api/document/suggestions", params={"id": created["id"]})
    assert resp.status_code == 200
    listed = resp.json()["data"]["suggestions"]
    assert [(s["original_text"], s["suggested_text"]) for s in listed] == [("teh", "the")]
    assert listed[0]["document_id"] == created["id"]
