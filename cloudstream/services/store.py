from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Sequence

from ..models.asset import STATUS_ORDER, AssetMetadata, AssetRecord, AssetStatus

logger = logging.getLogger("cloudstream.store")

# Listeners get the live records, newest first. The view is only valid for the
# duration of the call and must not be mutated or kept.
StoreListener = Callable[[Sequence[AssetRecord]], None]


class AssetStore:
    """
    Authoritative in-memory mapping of asset id to AssetRecord.

    Every mutation goes through a method on this class and happens under one
    lock; readers receive deep copies, so a reader never sees a half-applied
    transition. Listeners run under the same lock, in mutation order, with a
    read-only view of the live records instead of copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, AssetRecord] = {}
        self._order: list[str] = []
        self._listeners: list[StoreListener] = []

    def subscribe(self, listener: StoreListener) -> None:
        with self._lock:
            self._listeners.append(listener)
            listener(self._view_locked())

    def _snapshot_locked(self) -> list[AssetRecord]:
        return [self._records[asset_id].snapshot() for asset_id in reversed(self._order)]

    def _view_locked(self) -> tuple[AssetRecord, ...]:
        return tuple(self._records[asset_id] for asset_id in reversed(self._order))

    def _notify_locked(self) -> None:
        if not self._listeners:
            return
        view = self._view_locked()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Store listener failed")

    def add(self, record: AssetRecord) -> AssetRecord:
        with self._lock:
            if record.id in self._records:
                raise KeyError(f"Asset {record.id} already exists")
            self._records[record.id] = record.snapshot()
            self._order.append(record.id)
            self._notify_locked()
            return self._records[record.id].snapshot()

    def get(self, asset_id: str) -> AssetRecord | None:
        with self._lock:
            record = self._records.get(asset_id)
            return record.snapshot() if record else None

    def contains(self, asset_id: str) -> bool:
        with self._lock:
            return asset_id in self._records

    def list(self) -> list[AssetRecord]:
        """All records, newest submission first."""
        with self._lock:
            return self._snapshot_locked()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def remove(self, asset_id: str) -> AssetRecord | None:
        with self._lock:
            record = self._records.pop(asset_id, None)
            if record is None:
                return None
            self._order.remove(asset_id)
            self._notify_locked()
            return record

    def _owned_locked(self, asset_id: str, run_id: int) -> AssetRecord | None:
        record = self._records.get(asset_id)
        if record is None or record.run_id != run_id:
            return None
        return record

    def begin_run(self, asset_id: str) -> AssetRecord | None:
        """Starts a new run generation; older runs lose write access."""
        with self._lock:
            record = self._records.get(asset_id)
            if record is None:
                return None
            record.run_id += 1
            record.status = AssetStatus.PENDING
            record.progress = 0
            record.error = None
            record.compressed_size_bytes = None
            record.stream_url = None
            record.published_at = None
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def advance(
        self, asset_id: str, run_id: int, progress: int, status: AssetStatus
    ) -> AssetRecord | None:
        """
        Applies a progress tick. Returns None when the record is gone or the run
        is stale. Progress and status never move backwards, and a tick can never
        publish; that is finalize's job.
        """
        if status == AssetStatus.PUBLISHED:
            raise ValueError("advance() cannot publish; use finalize()")
        with self._lock:
            record = self._owned_locked(asset_id, run_id)
            if record is None or record.status not in STATUS_ORDER:
                return None
            if record.status == AssetStatus.PUBLISHED:
                return None
            new_progress = max(record.progress, min(max(int(progress), 0), 99))
            if STATUS_ORDER[status] < STATUS_ORDER[record.status]:
                status = record.status
            if new_progress == record.progress and status == record.status:
                return record.snapshot()
            record.progress = new_progress
            record.status = status
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def finalize(
        self, asset_id: str, run_id: int, compressed_size_bytes: int, stream_url: str
    ) -> AssetRecord | None:
        """
        Publishes the record: status, progress 100 and both derived fields in one
        mutation. Returns None if the run no longer owns the record or it is
        already published, so a run can finalize at most once.
        """
        with self._lock:
            record = self._owned_locked(asset_id, run_id)
            if record is None or record.status in (
                AssetStatus.PUBLISHED,
                AssetStatus.FAILED,
                AssetStatus.ENRICHMENT_FAILED,
            ):
                return None
            now = time.time()
            record.compressed_size_bytes = int(compressed_size_bytes)
            record.stream_url = stream_url
            record.progress = 100
            record.status = AssetStatus.PUBLISHED
            record.published_at = now
            record.updated_at = now
            self._notify_locked()
            return record.snapshot()

    def mark_failed(self, asset_id: str, run_id: int, error: str) -> AssetRecord | None:
        with self._lock:
            record = self._owned_locked(asset_id, run_id)
            if record is None or record.status == AssetStatus.PUBLISHED:
                return None
            record.status = AssetStatus.FAILED
            record.error = error
            record.compressed_size_bytes = None
            record.stream_url = None
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def mark_enrichment_failed(self, asset_id: str, error: str) -> AssetRecord | None:
        with self._lock:
            record = self._records.get(asset_id)
            if record is None or record.status != AssetStatus.PENDING:
                return None
            record.status = AssetStatus.ENRICHMENT_FAILED
            record.error = error
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def reset_pending(self, asset_id: str) -> AssetRecord | None:
        """Moves an enrichment_failed record back to pending for another attempt."""
        with self._lock:
            record = self._records.get(asset_id)
            if record is None or record.status != AssetStatus.ENRICHMENT_FAILED:
                return None
            record.status = AssetStatus.PENDING
            record.error = None
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def update_metadata(self, asset_id: str, metadata: AssetMetadata) -> AssetRecord | None:
        with self._lock:
            record = self._records.get(asset_id)
            if record is None:
                return None
            record.metadata = metadata
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()

    def resubmit(self, asset_id: str, metadata: AssetMetadata) -> AssetRecord | None:
        """
        Replaces metadata and resets the record for another pipeline pass:
        status pending, progress 0, derived fields cleared, new run generation.
        """
        with self._lock:
            record = self._records.get(asset_id)
            if record is None:
                return None
            record.metadata = metadata
            record.run_id += 1
            record.status = AssetStatus.PENDING
            record.progress = 0
            record.error = None
            record.compressed_size_bytes = None
            record.stream_url = None
            record.published_at = None
            record.updated_at = time.time()
            self._notify_locked()
            return record.snapshot()
