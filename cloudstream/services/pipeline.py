from __future__ import annotations

import logging
import random
import secrets
import threading

from ..config import PipelineConfig
from ..errors import EnrichmentError, StateError, ValidationError
from ..models.asset import AssetMetadata, AssetRecord, AssetStatus, NotificationKind
from .accountant import StorageAccountant
from .activity import ActivityLog
from .catalog import list_categories
from .enrichment import EnrichmentSuggestion, MetadataEnricher
from .executor import PipelineExecutor
from .notifications import NotificationCenter
from .publisher import SimulatedPublisher, TranscodePlan, build_transcode_plan
from .store import AssetStore
from ..utils.validation import is_video_filename

logger = logging.getLogger("cloudstream.pipeline")

MAX_SOURCE_NAME_LENGTH = 255


def _new_asset_id() -> str:
    return secrets.token_urlsafe(6)


def _validate_source(source_name, original_size_bytes) -> tuple[str, int]:
    name = str(source_name or "").strip()
    if not name:
        raise ValidationError("source_name is required")
    if len(name) > MAX_SOURCE_NAME_LENGTH or "/" in name or "\\" in name:
        raise ValidationError("source_name must be a plain file name")
    if not is_video_filename(name):
        raise ValidationError("source_name must be a video file")
    if isinstance(original_size_bytes, bool):
        raise ValidationError("original_size_bytes must be an integer")
    try:
        size = int(original_size_bytes)
    except (TypeError, ValueError):
        raise ValidationError("original_size_bytes must be an integer") from None
    if size < 0:
        raise ValidationError("original_size_bytes must not be negative")
    return name, size


class PipelineService:
    """
    Command interface of the asset pipeline: submission, edits, deletion,
    queries and the "process everything pending" command.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        store: AssetStore | None = None,
        enricher: MetadataEnricher | None = None,
        publisher: SimulatedPublisher | None = None,
        notifications: NotificationCenter | None = None,
        activity: ActivityLog | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.store = store or AssetStore()
        self.accountant = StorageAccountant(config.quota_bytes)
        self.accountant.observe(self.store)
        self.notifications = notifications or NotificationCenter(
            config.notification_timeout_seconds
        )
        self.publisher = publisher or SimulatedPublisher(
            public_domain=config.public_domain, compression_ratio=config.compression_ratio
        )
        self.enricher = enricher or MetadataEnricher(
            endpoint=config.enrich_url,
            timeout_seconds=config.enrich_timeout_seconds,
            max_attempts=config.enrich_max_attempts,
        )
        self.activity = activity
        self.executor = PipelineExecutor(
            self.store,
            self.publisher,
            tick_interval_seconds=config.tick_interval_seconds,
            step_range=(config.progress_step_min, config.progress_step_max),
            rng=rng,
            on_published=self._handle_published,
            on_failed=self._handle_failed,
        )
        self._enrich_lock = threading.Lock()
        self._enrichments: set[str] = set()

    def _record_activity(self, action: str, asset_id: str, detail: dict | None = None) -> None:
        if self.activity is not None:
            self.activity.record(action, asset_id, detail)

    # Submission

    def submit(
        self,
        source_name: str,
        original_size_bytes: int,
        metadata: AssetMetadata | dict | None = None,
        *,
        auto_enrich: bool = False,
    ) -> AssetRecord:
        name, size = _validate_source(source_name, original_size_bytes)
        if not isinstance(metadata, AssetMetadata):
            metadata = AssetMetadata.from_payload(metadata)
        asset_id = _new_asset_id()
        # Reserved before the record is visible so process_pending cannot admit
        # it ahead of its enrichment.
        if auto_enrich:
            self._reserve_enrichment(asset_id)
        try:
            record = self.store.add(
                AssetRecord(id=asset_id, source_name=name, original_size_bytes=size, metadata=metadata)
            )
        except KeyError:
            if auto_enrich:
                self._release_enrichment(asset_id)
            raise
        logger.info(
            "Submitted %s (%s, %s bytes)", record.id, name, size, extra={"asset_id": record.id}
        )
        self._record_activity(
            "submitted",
            record.id,
            {"source_name": name, "size": size, "category": metadata.category},
        )
        self.notifications.push(f'Video "{name}" sent for processing', NotificationKind.SUCCESS)
        if auto_enrich:
            self._start_enrichment(record.id)
        else:
            self.executor.start(record.id)
        return record

    def resubmit(self, asset_id: str, metadata: AssetMetadata | dict | None) -> AssetRecord | None:
        """
        Re-enters an asset into the pipeline with new metadata. Any running job
        is cancelled and derived fields are cleared before the new run starts.
        """
        current = self.store.get(asset_id)
        if current is None:
            return None
        if not isinstance(metadata, AssetMetadata):
            metadata = AssetMetadata.from_payload(metadata, base=current.metadata)
        self.executor.cancel(asset_id)
        record = self.store.resubmit(asset_id, metadata)
        if record is None:
            return None
        self._record_activity(
            "resubmitted",
            asset_id,
            {
                "previous_status": current.status.value,
                "aspect_changed": current.metadata.is_shorts != metadata.is_shorts,
            },
        )
        self.executor.start(asset_id)
        return record

    def delete(self, asset_id: str) -> bool:
        self.executor.cancel(asset_id)
        removed = self.store.remove(asset_id)
        if removed is None:
            return False
        logger.info("Deleted %s", asset_id, extra={"asset_id": asset_id})
        self._record_activity("deleted", asset_id, {"status": removed.status.value})
        self.notifications.push(
            f'Video "{removed.source_name}" deleted from storage', NotificationKind.SUCCESS
        )
        return True

    def retry(self, asset_id: str) -> AssetRecord | None:
        record = self.store.get(asset_id)
        if record is None:
            return None
        if record.status == AssetStatus.ENRICHMENT_FAILED:
            if not self._reserve_enrichment(asset_id):
                raise StateError(f"Asset {asset_id} is already being enriched")
            if self.store.reset_pending(asset_id) is None:
                self._release_enrichment(asset_id)
                current = self.store.get(asset_id)
                if current is None:
                    return None
                raise StateError(f"Asset {asset_id} cannot be retried while {current.status.value}")
            self._start_enrichment(asset_id)
        elif record.status == AssetStatus.FAILED:
            self.executor.start(asset_id)
        else:
            raise StateError(f"Asset {asset_id} cannot be retried while {record.status.value}")
        return self.store.get(asset_id)

    def process_pending(self) -> list[str]:
        """Admits every pending asset that has no running job, oldest first."""
        started = []
        for record in reversed(self.store.list()):
            if record.status != AssetStatus.PENDING:
                continue
            with self._enrich_lock:
                if record.id in self._enrichments:
                    continue
            if self.executor.start(record.id):
                started.append(record.id)
        if started:
            logger.info("Processing %s pending assets", len(started))
        return started

    # Enrichment

    def enrich(self, source_name: str) -> EnrichmentSuggestion:
        return self.enricher.enrich(source_name)

    def _reserve_enrichment(self, asset_id: str) -> bool:
        with self._enrich_lock:
            if asset_id in self._enrichments:
                return False
            self._enrichments.add(asset_id)
            return True

    def _release_enrichment(self, asset_id: str) -> None:
        with self._enrich_lock:
            self._enrichments.discard(asset_id)

    def _start_enrichment(self, asset_id: str) -> None:
        """Runs enrichment for an id already reserved with _reserve_enrichment."""

        def runner():
            try:
                self._run_enrichment(asset_id)
            except Exception as exc:
                logger.warning("enrichment task %s failed: %s", asset_id, exc)
            finally:
                self._release_enrichment(asset_id)

        t = threading.Thread(target=runner, name=f"enrich-{asset_id}", daemon=True)
        t.start()

    def _run_enrichment(self, asset_id: str) -> None:
        record = self.store.get(asset_id)
        if record is None:
            return
        try:
            suggestion = self.enricher.enrich(record.source_name)
        except EnrichmentError as exc:
            failed = self.store.mark_enrichment_failed(asset_id, str(exc))
            if failed is not None:
                self._record_activity("enrichment_failed", asset_id, {"error": str(exc)})
                self.notifications.push(
                    f'Metadata generation failed for "{failed.source_name}"',
                    NotificationKind.ERROR,
                )
            return
        current = self.store.get(asset_id)
        if current is None or current.status != AssetStatus.PENDING:
            return
        if self.executor.is_active(asset_id):
            # Edited and resubmitted while enrichment ran; keep the user's values.
            return
        self.store.update_metadata(asset_id, current.metadata.with_suggestion(suggestion))
        self.executor.start(asset_id)

    def is_enriching(self, asset_id: str) -> bool:
        with self._enrich_lock:
            return asset_id in self._enrichments

    # Queries

    def get(self, asset_id: str) -> AssetRecord | None:
        return self.store.get(asset_id)

    def list(self) -> list[AssetRecord]:
        return self.store.list()

    def stats(self):
        return self.accountant.stats()

    def categories(self) -> list[dict]:
        return list_categories()

    def transcode_plan(self, asset_id: str) -> TranscodePlan | None:
        record = self.store.get(asset_id)
        if record is None:
            return None
        return build_transcode_plan(record)

    def recent_activity(self, limit: int = 100, asset_id: str | None = None) -> list[dict]:
        if self.activity is None:
            return []
        return self.activity.recent(limit=limit, asset_id=asset_id)

    def list_notifications(self):
        return self.notifications.list()

    # Executor callbacks

    def _handle_published(self, record: AssetRecord) -> None:
        self._record_activity(
            "published",
            record.id,
            {"compressed_size_bytes": record.compressed_size_bytes, "stream_url": record.stream_url},
        )
        self.notifications.push(
            f'Video "{record.source_name}" published successfully', NotificationKind.SUCCESS
        )

    def _handle_failed(self, record: AssetRecord, exc: Exception) -> None:
        self._record_activity("failed", record.id, {"error": record.error})
        self.notifications.push(
            f'Processing failed for "{record.source_name}": {record.error}',
            NotificationKind.ERROR,
        )

    def shutdown(self) -> None:
        self.executor.shutdown()
        self.notifications.shutdown()
