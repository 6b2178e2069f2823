from __future__ import annotations

import threading
from typing import Iterable

from ..metrics import STORAGE_PUBLISHED_ASSETS, STORAGE_USED_BYTES
from ..models.asset import AssetRecord, AssetStatus, StorageStats


def compute_storage_stats(records: Iterable[AssetRecord], quota_bytes: int) -> StorageStats:
    """
    Aggregates published assets. A published record without a compressed size
    counts its original size instead.
    """
    count = 0
    used = 0
    for record in records:
        if record.status != AssetStatus.PUBLISHED:
            continue
        count += 1
        size = record.compressed_size_bytes
        if size is None:
            size = record.original_size_bytes
        used += max(0, int(size or 0))
    if quota_bytes > 0:
        percentage = min(used / quota_bytes * 100.0, 100.0)
    else:
        percentage = 0.0
    return StorageStats(count=count, used_bytes=used, percentage=percentage, quota_bytes=quota_bytes)


class StorageAccountant:
    """Keeps storage stats current by recomputing on every store mutation."""

    def __init__(self, quota_bytes: int) -> None:
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()
        self._stats = StorageStats(count=0, used_bytes=0, percentage=0.0, quota_bytes=quota_bytes)

    def observe(self, store) -> None:
        store.subscribe(self.recompute)

    def recompute(self, records: Iterable[AssetRecord]) -> StorageStats:
        stats = compute_storage_stats(records, self.quota_bytes)
        with self._lock:
            self._stats = stats
        if STORAGE_USED_BYTES is not None:
            STORAGE_USED_BYTES.set(stats.used_bytes)
        if STORAGE_PUBLISHED_ASSETS is not None:
            STORAGE_PUBLISHED_ASSETS.set(stats.count)
        return stats

    def stats(self) -> StorageStats:
        with self._lock:
            return self._stats
