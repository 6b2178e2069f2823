from __future__ import annotations

from cloudstream.models.asset import AssetRecord, AssetStatus
from cloudstream.services.accountant import StorageAccountant, compute_storage_stats
from cloudstream.services.publisher import SimulatedPublisher
from cloudstream.services.store import AssetStore

QUOTA = 10 * 1024**3


def _record(asset_id, status=AssetStatus.PUBLISHED, size=1000, compressed=None):
    return AssetRecord(
        id=asset_id,
        source_name=f"{asset_id}.mp4",
        original_size_bytes=size,
        status=status,
        compressed_size_bytes=compressed,
    )


def test_compressed_size_uses_ratio():
    publisher = SimulatedPublisher(public_domain="https://m", compression_ratio=0.2)
    assert publisher.compressed_size(130547712) == 26109542
    assert publisher.compressed_size(0) == 0


def test_stats_count_only_published():
    records = [
        _record("a1", compressed=26109542, size=130547712),
        _record("a2", status=AssetStatus.UPLOADING, compressed=None),
        _record("a3", status=AssetStatus.FAILED),
    ]
    stats = compute_storage_stats(records, QUOTA)
    assert stats.count == 1
    assert stats.used_bytes == 26109542
    assert round(stats.percentage, 4) == round(26109542 / QUOTA * 100, 4)


def test_published_without_compressed_size_counts_original():
    stats = compute_storage_stats([_record("a1", size=5000, compressed=None)], QUOTA)
    assert stats.used_bytes == 5000


def test_percentage_is_capped():
    stats = compute_storage_stats([_record("a1", compressed=300)], 100)
    assert stats.percentage == 100.0
    assert compute_storage_stats([], 0).percentage == 0.0


def test_accountant_tracks_store_mutations():
    store = AssetStore()
    accountant = StorageAccountant(QUOTA)
    accountant.observe(store)
    assert accountant.stats().count == 0

    store.add(_record("a1", status=AssetStatus.PENDING, size=130547712))
    run = store.begin_run("a1").run_id
    store.finalize("a1", run, 26109542, "url")
    assert accountant.stats().count == 1
    assert accountant.stats().used_bytes == 26109542

    store.remove("a1")
    assert accountant.stats().count == 0
    assert accountant.stats().used_bytes == 0
