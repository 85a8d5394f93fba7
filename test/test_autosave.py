"""
test_autosave.py
----------------
Debounced, idempotent persistence of human edits.
"""

import asyncio
import uuid

import pytest

from services.autosave import AutosaveScheduler
from services.document_store import WriteStatus


@pytest.fixture
async def document(store, user):
    doc_id = uuid.uuid4()
    await store.save_document(
        document_id=doc_id, title="Draft", content="start", kind="text", owner_id=user.id,
        version_type="explicit",
    )
    return doc_id


@pytest.fixture
def scheduler(store, user, document):
    autosave = AutosaveScheduler(store, owner_id=user.id, delay=60)
    autosave.bind(document, "text", "Draft")
    return autosave


@pytest.mark.asyncio
async def test_only_last_scheduled_content_is_written(scheduler, store, document):
    for text in ("s", "st", "sta", "start!"):
        scheduler.schedule(text)
    result = await scheduler.flush()

    assert result.status is WriteStatus.CREATED
    versions = await store.list_versions(document)
    assert [v.content for v in versions] == ["start", "start!"]
    assert versions[-1].version_type == "autosave"


@pytest.mark.asyncio
async def test_identical_content_writes_nothing(scheduler, store, document):
    for _ in range(5):
        scheduler.schedule("start")
    result = await scheduler.flush()

    assert result.status is WriteStatus.UNCHANGED
    assert len(await store.list_versions(document)) == 1


@pytest.mark.asyncio
async def test_repeated_flush_of_same_edit_produces_one_row(scheduler, store, document):
    scheduler.schedule("edited")
    await scheduler.flush()
    scheduler.schedule("edited")
    second = await scheduler.flush()

    assert second.status is WriteStatus.UNCHANGED
    assert len(await store.list_versions(document)) == 2


@pytest.mark.asyncio
async def test_flush_without_pending_returns_none(scheduler):
    assert await scheduler.flush() is None


@pytest.mark.asyncio
async def test_title_change_counts_as_a_change(scheduler, store, document):
    scheduler.schedule("start", title="Renamed")
    result = await scheduler.flush()
    assert result.status is WriteStatus.CREATED
    assert (await store.get_latest(document)).title == "Renamed"


@pytest.mark.asyncio
async def test_timer_fires_after_delay(store, user, document):
    autosave = AutosaveScheduler(store, owner_id=user.id, delay=0.01)
    autosave.bind(document, "text", "Draft")
    autosave.schedule("typed")

    for _ in range(100):
        await asyncio.sleep(0.01)
        if not autosave.has_pending and not autosave._tasks:
            break
    await autosave.aclose()

    assert (await store.get_latest(document)).content == "typed"


@pytest.mark.asyncio
async def test_save_now_is_explicit_and_supersedes_pending(scheduler, store, document):
    scheduler.schedule("typing...")
    result = await scheduler.save_now("final")

    assert result.status is WriteStatus.CREATED
    assert result.document.version_type == "explicit"
    assert not scheduler.has_pending
    assert await scheduler.flush() is None


@pytest.mark.asyncio
async def test_cancel_discards_pending(scheduler, store, document):
    scheduler.schedule("never saved")
    scheduler.cancel()
    assert await scheduler.flush() is None
    assert len(await store.list_versions(document)) == 1


@pytest.mark.asyncio
async def test_schedule_requires_bind(store, user):
    autosave = AutosaveScheduler(store, owner_id=user.id)
    with pytest.raises(RuntimeError):
        autosave.schedule("x")


@pytest.mark.asyncio
async def test_drain_waits_for_timer_started_write(scheduler, store, document):
    scheduler.schedule("typed")
    scheduler._on_timer()
    await asyncio.sleep(0)
    assert not scheduler.has_pending

    assert await scheduler.drain() is None
    assert (await store.get_latest(document)).content == "typed"

    scheduler.schedule("typed more")
    result = await scheduler.drain()
    assert result.status is WriteStatus.CREATED
    assert [v.content for v in await store.list_versions(document)] == ["start", "typed", "typed more"]
