"""Tests for lifecycle eviction and the orphan sweep."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from services.lifecycle.SweepScheduler import SweepScheduler
from shared.exceptions.errors import EmbeddingError

TEXT = "".join(chr(97 + i % 26) for i in range(4500))


def _ago(**delta) -> str:
    return (datetime.now(timezone.utc) - timedelta(**delta)).isoformat()


def _ingest(run, fake_web, url: str) -> str:
    fake_web.pages[url] = f"<html><body><p>{TEXT}</p></body></html>"
    return run(lambda c: c.ingestion_service.do_ingest(url, "url", credential="key-1")).document_id


def _metadata(fake_qdrant, container, document_id: str) -> dict:
    for point in fake_qdrant.points(container.registry.metadata_collection):
        if point["payload"]["document_id"] == document_id:
            return point["payload"]
    raise KeyError(document_id)


def _chunk_ids(fake_qdrant, container) -> set[str]:
    return {p["payload"]["document_id"] for p in fake_qdrant.points(container.registry.chunk_collection)}


def test_sweep_evicts_stale_documents_and_keeps_fresh_ones(run, container, fake_qdrant, fake_web) -> None:
    stale = _ingest(run, fake_web, "http://example.test/stale")
    fresh = _ingest(run, fake_web, "http://example.test/fresh")
    _metadata(fake_qdrant, container, stale)["last_accessed_at"] = _ago(hours=25)
    _metadata(fake_qdrant, container, fresh)["last_accessed_at"] = _ago(hours=23)

    result = run(lambda c: c.sweeper_service.do_sweep())

    assert result.evicted_ids == [stale]
    assert result.evicted_count == 1
    assert result.failed_ids == []
    assert result.scanned_count == 2
    assert _chunk_ids(fake_qdrant, container) == {fresh}
    assert [p["payload"]["document_id"] for p in fake_qdrant.points(container.registry.metadata_collection)] == [fresh]


def test_sweep_honours_retention_override(run, container, fake_qdrant, fake_web) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a")
    _metadata(fake_qdrant, container, document_id)["last_accessed_at"] = _ago(minutes=10)

    kept = run(lambda c: c.sweeper_service.do_sweep(retention_seconds=3600))
    evicted = run(lambda c: c.sweeper_service.do_sweep(retention_seconds=60))

    assert kept.evicted_ids == []
    assert evicted.evicted_ids == [document_id]


def test_accessed_document_survives_sweep(run, container, fake_qdrant, fake_web) -> None:
    document_id = _ingest(run, fake_web, "http://example.test/a")
    _metadata(fake_qdrant, container, document_id)["last_accessed_at"] = _ago(hours=30)

    run(lambda c: c.retrieval_service.do_answer("question", document_id, credential="key-1"))
    result = run(lambda c: c.sweeper_service.do_sweep())

    assert result.evicted_ids == []
    assert _chunk_ids(fake_qdrant, container) == {document_id}


def test_sweep_records_failures_and_continues(run, container, fake_qdrant, fake_web) -> None:
    failing = _ingest(run, fake_web, "http://example.test/failing")
    broken = _ingest(run, fake_web, "http://example.test/broken")
    stale = _ingest(run, fake_web, "http://example.test/stale")
    _metadata(fake_qdrant, container, failing)["last_accessed_at"] = _ago(days=3)
    _metadata(fake_qdrant, container, broken)["last_accessed_at"] = "not a timestamp"
    _metadata(fake_qdrant, container, stale)["last_accessed_at"] = _ago(days=3)
    fake_qdrant.fail_chunk_delete_for.add(failing)

    result = run(lambda c: c.sweeper_service.do_sweep())

    assert result.evicted_ids == [stale]
    assert sorted(result.failed_ids) == sorted([failing, broken])
    # a failed eviction keeps its metadata record
    assert _metadata(fake_qdrant, container, failing)


def test_sweep_records_unreadable_store_response_as_failure(run, container, fake_qdrant, fake_web) -> None:
    garbled = _ingest(run, fake_web, "http://example.test/garbled")
    stale = _ingest(run, fake_web, "http://example.test/stale")
    _metadata(fake_qdrant, container, garbled)["last_accessed_at"] = _ago(days=3)
    _metadata(fake_qdrant, container, stale)["last_accessed_at"] = _ago(days=3)
    fake_qdrant.html_chunk_delete_for.add(garbled)

    result = run(lambda c: c.sweeper_service.do_sweep())

    assert result.evicted_ids == [stale]
    assert result.failed_ids == [garbled]
    assert _metadata(fake_qdrant, container, garbled)


def test_orphan_sweep_removes_only_old_unpublished_chunks(run, container, fake_qdrant, fake_ollama, fake_web) -> None:
    published = _ingest(run, fake_web, "http://example.test/published")
    fake_web.pages["http://example.test/orphan"] = f"<html><body><p>{TEXT}</p></body></html>"
    fake_ollama.fail_embed_on_call = fake_ollama.embed_calls + 2
    container.ingestion_service.chunk_size = 500
    container.ingestion_service.chunk_overlap = 0
    with pytest.raises(EmbeddingError):
        run(lambda c: c.ingestion_service.do_ingest("http://example.test/orphan", "url", credential="key-1"))
    orphan = (_chunk_ids(fake_qdrant, container) - {published}).pop()

    # still inside the grace period: an ingestion may be running
    first = run(lambda c: c.sweeper_service.do_sweep_orphans())
    assert first.removed_ids == []

    for point in fake_qdrant.points(container.registry.chunk_collection):
        if point["payload"]["document_id"] == orphan:
            point["payload"]["created_at"] = _ago(hours=2)
    second = run(lambda c: c.sweeper_service.do_sweep_orphans())

    assert second.removed_ids == [orphan]
    assert _chunk_ids(fake_qdrant, container) == {published}


def test_scheduler_runs_sweep_and_stops(helper_config) -> None:
    calls: list[str] = []

    class RecordingSweeper:
        retention_seconds = 86400

        async def do_sweep(self):
            calls.append("sweep")

        async def do_sweep_orphans(self):
            calls.append("orphans")

    scheduler = SweepScheduler(helper_config=helper_config, sweeper=RecordingSweeper())
    scheduler.enabled = True
    scheduler.interval_seconds = 0.01

    async def scenario():
        scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.is_running()
        await scheduler.stop()

    asyncio.run(scenario())
    assert calls[:2] == ["sweep", "orphans"]
    assert not scheduler.is_running()


def test_scheduler_keeps_running_after_unexpected_error(helper_config) -> None:
    calls: list[str] = []

    class FlakySweeper:
        retention_seconds = 86400

        async def do_sweep(self):
            calls.append("sweep")
            if calls.count("sweep") == 1:
                json.loads("<html>")

        async def do_sweep_orphans(self):
            calls.append("orphans")

    scheduler = SweepScheduler(helper_config=helper_config, sweeper=FlakySweeper())
    scheduler.enabled = True
    scheduler.interval_seconds = 0.01

    async def scenario():
        scheduler.start()
        await asyncio.sleep(0.1)
        assert scheduler.is_running()
        await scheduler.stop()

    asyncio.run(scenario())
    assert calls.count("sweep") >= 2
    assert calls[1] == "orphans"
    assert not scheduler.is_running()


def test_scheduler_disabled_does_not_start(helper_config, container) -> None:
    scheduler = SweepScheduler(helper_config=helper_config, sweeper=container.sweeper_service)
    assert scheduler.enabled is False

    async def scenario():
        scheduler.start()
        return scheduler.is_running()

    assert asyncio.run(scenario()) is False
