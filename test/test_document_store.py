"""
test_document_store.py
----------------------
Append-only versioning, owner checks and restore.
"""

import uuid

import pytest

from models.document import VersionType
from services.document_store import WriteStatus


@pytest.mark.asyncio
async def test_save_appends_versions_without_mutating_earlier_rows(store, user):
    doc_id = uuid.uuid4()
    first = await store.save_document(
        document_id=doc_id, title="Notes", content="Hello", kind="text", owner_id=user.id
    )
    second = await store.save_document(
        document_id=doc_id,
        title="Notes",
        content="Hello world",
        kind="text",
        owner_id=user.id,
        version_type=VersionType.AI_UPDATE,
    )
    assert first.status is WriteStatus.CREATED
    assert second.status is WriteStatus.CREATED

    versions = await store.list_versions(doc_id)
    assert [v.content for v in versions] == ["Hello", "Hello world"]
    assert versions[0].created_at < versions[1].created_at
    assert versions[0].created_at == first.document.created_at
    assert versions[1].version_type == "ai_update"
    assert versions[0].is_autosave is True
    assert versions[1].is_autosave is False

    latest = await store.get_latest(str(doc_id))
    assert latest.content == "Hello world"


@pytest.mark.asyncio
async def test_rapid_saves_get_strictly_increasing_timestamps(store, user, monkeypatch):
    from services import document_store as module

    frozen = module.utc_now()
    monkeypatch.setattr(module, "utc_now", lambda: frozen)

    doc_id = uuid.uuid4()
    for n in range(3):
        result = await store.save_document(
            document_id=doc_id, title="t", content=str(n), kind="code", owner_id=user.id
        )
        assert result.ok

    stamps = [v.created_at for v in await store.list_versions(doc_id)]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 3


@pytest.mark.asyncio
async def test_unknown_owner_is_rejected(store, user):
    doc_id = uuid.uuid4()
    result = await store.save_document(
        document_id=doc_id, title="t", content="x", kind="text", owner_id=user.id + 999
    )
    assert result.status is WriteStatus.REJECTED
    assert result.reason == "unknown_owner"
    assert not result.ok
    assert await store.get_latest(doc_id) is None


@pytest.mark.asyncio
async def test_invalid_id_reads_return_nothing(store):
    assert await store.get_latest("not-a-uuid") is None
    assert await store.list_versions("not-a-uuid") == []
    with pytest.raises(ValueError):
        await store.save_document(
            document_id="not-a-uuid", title="t", content="x", kind="text", owner_id=1
        )


@pytest.mark.asyncio
async def test_restore_drops_newer_versions_and_their_suggestions(store, user):
    doc_id = uuid.uuid4()
    results = [
        await store.save_document(
            document_id=doc_id, title="t", content=body, kind="text", owner_id=user.id
        )
        for body in ("v1", "v2", "v3")
    ]
    await store.save_suggestions(
        [
            {
                "document_id": doc_id,
                "document_created_at": results[2].document.created_at,
                "original_text": "v3",
                "suggested_text": "v3!",
                "owner_id": user.id,
            }
        ]
    )
    assert len(await store.get_suggestions(doc_id)) == 1

    deleted = await store.delete_versions_after(doc_id, results[0].document.created_at)
    assert deleted == 2
    assert (await store.get_latest(doc_id)).content == "v1"
    assert await store.get_suggestions(doc_id) == []


@pytest.mark.asyncio
async def test_delete_document_removes_every_version(store, user):
    doc_id = uuid.uuid4()
    for body in ("a", "b"):
        await store.save_document(
            document_id=doc_id, title="t", content=body, kind="sheet", owner_id=user.id
        )
    assert await store.delete_document(doc_id) == 2
    assert await store.list_versions(doc_id) == []


@pytest.mark.asyncio
async def test_stream_records_resolve_latest_run(stream_records):
    assert await stream_records.latest_stream_id("chat-1") is None
    await stream_records.create_stream_record("run-a", "chat-1")
    await stream_records.create_stream_record("run-b", "chat-1")
    await stream_records.create_stream_record("run-c", "chat-2")

    assert await stream_records.get_stream_ids_by_chat_id("chat-1") == ["run-a", "run-b"]
    assert await stream_records.latest_stream_id("chat-1") == "run-b"
