from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from cloudstream.models.asset import AssetMetadata, AssetRecord, AssetStatus
from cloudstream.services.accountant import StorageAccountant
from cloudstream.services.store import AssetStore


def _record(asset_id="a1", size=1000):
    return AssetRecord(id=asset_id, source_name=f"{asset_id}.mp4", original_size_bytes=size)


@pytest.fixture
def store():
    return AssetStore()


def test_add_rejects_duplicate_id(store):
    store.add(_record("a1"))
    with pytest.raises(KeyError):
        store.add(_record("a1"))


def test_list_newest_first(store):
    store.add(_record("a1"))
    store.add(_record("a2"))
    store.add(_record("a3"))
    assert [r.id for r in store.list()] == ["a3", "a2", "a1"]
    assert len(store) == 3


def test_get_returns_copy(store):
    store.add(_record("a1"))
    snap = store.get("a1")
    snap.progress = 77
    snap.metadata.title = "changed"
    fresh = store.get("a1")
    assert fresh.progress == 0
    assert fresh.metadata.title == ""
    assert store.get("missing") is None


def test_advance_is_monotonic(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id

    store.advance("a1", run, 60, AssetStatus.UPLOADING)
    record = store.advance("a1", run, 20, AssetStatus.PROCESSING_TRANSCODE)

    assert record.progress == 60
    assert record.status == AssetStatus.UPLOADING


def test_advance_caps_below_publish(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id
    record = store.advance("a1", run, 140, AssetStatus.UPLOADING)
    assert record.progress == 99
    assert record.status == AssetStatus.UPLOADING


def test_advance_cannot_publish(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id
    with pytest.raises(ValueError):
        store.advance("a1", run, 100, AssetStatus.PUBLISHED)


def test_stale_run_writes_are_ignored(store):
    store.add(_record("a1"))
    old_run = store.begin_run("a1").run_id
    store.begin_run("a1")

    assert store.advance("a1", old_run, 30, AssetStatus.PROCESSING_TRANSCODE) is None
    assert store.finalize("a1", old_run, 10, "https://x/videos/a/a1/index.m3u8") is None
    assert store.mark_failed("a1", old_run, "boom") is None
    assert store.get("a1").status == AssetStatus.PENDING


def test_writes_after_remove_are_ignored(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id
    removed = store.remove("a1")

    assert removed.id == "a1"
    assert store.advance("a1", run, 30, AssetStatus.PROCESSING_TRANSCODE) is None
    assert store.finalize("a1", run, 10, "url") is None
    assert store.remove("a1") is None
    assert len(store) == 0


def test_finalize_publishes_atomically_once(store):
    seen = []
    store.subscribe(lambda records: seen.extend(r.snapshot() for r in records))
    store.add(_record("a1", size=500))
    run = store.begin_run("a1").run_id
    store.advance("a1", run, 80, AssetStatus.UPLOADING)

    published = store.finalize("a1", run, 100, "https://media/videos/x/a1/index.m3u8")

    assert published.status == AssetStatus.PUBLISHED
    assert published.progress == 100
    assert published.published_at is not None
    assert store.finalize("a1", run, 999, "other") is None
    assert store.get("a1").compressed_size_bytes == 100
    for snap in seen:
        if snap.progress == 100 or snap.status == AssetStatus.PUBLISHED:
            assert snap.status == AssetStatus.PUBLISHED
            assert snap.compressed_size_bytes == 100
            assert snap.stream_url


def test_mark_failed_keeps_published(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id
    store.finalize("a1", run, 1, "url")
    assert store.mark_failed("a1", run, "late error") is None
    assert store.get("a1").status == AssetStatus.PUBLISHED


def test_enrichment_failure_and_reset(store):
    store.add(_record("a1"))

    failed = store.mark_enrichment_failed("a1", "timeout")
    assert failed.status == AssetStatus.ENRICHMENT_FAILED
    assert failed.error == "timeout"
    assert store.mark_enrichment_failed("a1", "again") is None

    reset = store.reset_pending("a1")
    assert reset.status == AssetStatus.PENDING
    assert reset.error is None
    assert store.reset_pending("a1") is None


def test_resubmit_clears_derived_fields(store):
    store.add(_record("a1"))
    run = store.begin_run("a1").run_id
    store.finalize("a1", run, 10, "url")

    record = store.resubmit("a1", AssetMetadata(title="New", is_shorts=True))

    assert record.run_id == run + 1
    assert record.status == AssetStatus.PENDING
    assert record.progress == 0
    assert record.compressed_size_bytes is None
    assert record.stream_url is None
    assert record.published_at is None
    assert record.metadata.title == "New"
    assert store.resubmit("missing", AssetMetadata()) is None


def test_subscribe_receives_current_snapshot(store):
    store.add(_record("a1"))
    calls = []
    store.subscribe(lambda records: calls.append([r.id for r in records]))
    store.add(_record("a2"))
    assert calls == [["a1"], ["a2", "a1"]]


def test_listener_errors_are_logged(store, caplog):
    def broken(_records):
        raise RuntimeError("listener down")

    store._listeners.append(broken)
    with caplog.at_level(logging.ERROR, logger="cloudstream.store"):
        store.add(_record("a1"))

    assert store.contains("a1")
    assert "Store listener failed" in caplog.text


def test_listeners_get_live_view_without_copies(store):
    for i in range(50):
        store.add(_record(f"r{i}", size=100))
    accountant = StorageAccountant(10 * 1024**3)
    accountant.observe(store)
    run = store.begin_run("r0").run_id
    store.finalize("r0", run, 40, "url")
    store.add(_record("r50", size=100))
    run = store.begin_run("r50").run_id

    copied = []
    original = AssetRecord.snapshot

    def counting_snapshot(record):
        copied.append(record.id)
        return original(record)

    with patch.object(AssetRecord, "snapshot", counting_snapshot):
        store.advance("r50", run, 10, AssetStatus.PROCESSING_TRANSCODE)

    assert copied == ["r50"]
    assert accountant.stats().count == 1
    assert accountant.stats().used_bytes == 40
