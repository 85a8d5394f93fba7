"""
test_artifact_state.py
----------------------
Status transitions, edit locking during generation and flush-before-stream.
"""

import asyncio
import uuid

import pytest

from schemas.stream_events import EventType, make_event
from services.artifact_state import (
    ALLOWED_TRANSITIONS,
    ArtifactStateMachine,
    ArtifactStatus,
)
from services.autosave import AutosaveScheduler
from services.document_store import WriteStatus
from utils.event_codec import encode_event


@pytest.fixture
async def document(store, user):
    doc_id = uuid.uuid4()
    await store.save_document(
        document_id=doc_id, title="Essay", content="Once", kind="text", owner_id=user.id
    )
    return str(doc_id)


@pytest.fixture
def machine(store, user):
    autosave = AutosaveScheduler(store, owner_id=user.id, delay=60)
    return ArtifactStateMachine(autosave, updated_display_seconds=60)


def _frames(*events):
    async def feed():
        for event in events:
            yield encode_event(event)

    return feed()


@pytest.mark.asyncio
async def test_generation_run_streams_then_idles(machine):
    doc_id = str(uuid.uuid4())
    state = await machine.consume(
        _frames(
            make_event(EventType.KIND, "code"),
            make_event(EventType.ID, doc_id),
            make_event(EventType.TITLE, "Script"),
            make_event(EventType.CONTENT, "print(1)\n"),
            make_event(EventType.TEXT_DELTA, "Here you go.", transient=False),
            make_event(EventType.FINISH),
        )
    )
    assert state.status is ArtifactStatus.IDLE
    assert state.document_id == doc_id
    assert state.kind.value == "code"
    assert state.title == "Script"
    assert state.content == "print(1)\n"
    assert state.prose == "Here you go."
    assert state.is_visible
    assert [(t.source, t.target) for t in state.history] == [
        (ArtifactStatus.INIT, ArtifactStatus.STREAMING),
        (ArtifactStatus.STREAMING, ArtifactStatus.IDLE),
    ]


@pytest.mark.asyncio
async def test_transport_closure_finishes_stream(machine):
    state = await machine.consume(
        _frames(make_event(EventType.KIND, "text"), make_event(EventType.ID, "d1"))
    )
    assert state.status is ArtifactStatus.IDLE


@pytest.mark.asyncio
async def test_edits_rejected_while_streaming(machine, document):
    machine.open_document(document, "text", "Essay", "Once")
    await machine.apply(make_event(EventType.CONTENT, "Once upon"))
    assert machine.status is ArtifactStatus.STREAMING

    assert machine.edit_content("human text") is False
    assert machine.edit_title("Human title") is False
    assert await machine.save_now() is None
    assert machine.state.content == "Once upon"

    await machine.apply(make_event(EventType.CONTENT, "Once upon a time"))
    machine.finish_stream()
    assert machine.edit_content("Once upon a time, edited") is True


@pytest.mark.asyncio
async def test_pending_edit_flushed_before_new_stream(machine, store, document):
    machine.open_document(document, "text", "Essay", "Once")
    assert machine.edit_content("Once more") is True

    await machine.apply(make_event(EventType.CONTENT, "AI rewrite"))

    start = machine.state.history[-1]
    assert start.target is ArtifactStatus.STREAMING
    assert start.flushed is True
    versions = await store.list_versions(document)
    assert [v.content for v in versions] == ["Once", "Once more"]
    assert versions[-1].version_type == "autosave"


@pytest.mark.asyncio
async def test_content_before_document_id_is_ignored(machine):
    await machine.apply(make_event(EventType.CONTENT, "orphan"))
    assert machine.state.content == ""
    assert machine.status is ArtifactStatus.INIT


@pytest.mark.asyncio
async def test_updated_during_stream_applies_after_finish(machine, document):
    machine.open_document(document, "text", "Essay", "Once")
    await machine.apply(make_event(EventType.CONTENT, "Twice"))
    await machine.apply(make_event(EventType.UPDATED))
    assert machine.status is ArtifactStatus.STREAMING

    await machine.apply(make_event(EventType.FINISH))
    assert machine.status is ArtifactStatus.UPDATED

    machine.clear_updated()
    assert machine.status is ArtifactStatus.IDLE


@pytest.mark.asyncio
async def test_history_only_uses_allowed_transitions(machine, document):
    machine.open_document(document, "text", "Essay", "Once")
    for round_ in range(3):
        machine.edit_content(f"edit {round_}")
        await machine.apply(make_event(EventType.CONTENT, f"ai {round_}"))
        await machine.apply(make_event(EventType.UPDATED))
        await machine.apply(make_event(EventType.FINISH))

    pairs = [(t.source, t.target) for t in machine.state.history]
    assert all(pair in ALLOWED_TRANSITIONS for pair in pairs)
    for t in machine.state.history:
        if t.target is ArtifactStatus.STREAMING:
            assert t.flushed
    assert not machine.autosave.has_pending


@pytest.mark.asyncio
async def test_save_now_and_close(machine, store, document):
    machine.open_document(document, "text", "Essay", "Once")
    machine.edit_title("Essay v2")
    result = await machine.save_now()
    assert result.status is WriteStatus.CREATED
    assert result.document.version_type == "explicit"

    machine.edit_content("closing edit")
    closed = await machine.close()
    assert closed.status is WriteStatus.CREATED
    assert machine.state.is_visible is False
    assert (await store.get_latest(document)).content == "closing edit"


@pytest.mark.asyncio
async def test_updated_before_any_run_is_dropped(machine):
    doc_id = str(uuid.uuid4())
    state = await machine.consume(
        _frames(
            make_event(EventType.UPDATED),
            make_event(EventType.KIND, "text"),
            make_event(EventType.ID, doc_id),
            make_event(EventType.CONTENT, "hello"),
        )
    )
    assert state.status is ArtifactStatus.IDLE
    assert state.content == "hello"
    assert all(t.target is not ArtifactStatus.UPDATED for t in state.history)


@pytest.mark.asyncio
async def test_finish_and_suggestion_before_any_run_are_dropped(machine):
    await machine.apply(make_event(EventType.FINISH))
    await machine.apply(
        make_event(
            EventType.SUGGESTION,
            {
                "id": str(uuid.uuid4()),
                "documentId": str(uuid.uuid4()),
                "originalText": "a",
                "suggestedText": "b",
            },
        )
    )
    assert machine.status is ArtifactStatus.INIT
    assert machine.state.suggestions == []
    assert machine.state.history == []


@pytest.mark.asyncio
async def test_in_flight_autosave_completes_before_stream_starts(machine, store, document):
    machine.open_document(document, "text", "Essay", "Once")
    assert machine.edit_content("human edit") is True

    # debounce fires and its write is already under way
    machine.autosave._on_timer()
    await asyncio.sleep(0)
    assert not machine.autosave.has_pending

    await machine.apply(make_event(EventType.CONTENT, "ai text"))

    assert machine.status is ArtifactStatus.STREAMING
    assert machine.state.history[-1].flushed is True
    assert (await store.get_latest(document)).content == "human edit"
