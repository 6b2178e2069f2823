from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from opentelemetry import trace

from ..metrics import PIPELINE_JOB_DURATION, PIPELINE_JOBS_ACTIVE, PIPELINE_TRANSITIONS
from ..models.asset import AssetRecord, AssetStatus
from .publisher import SimulatedPublisher, build_transcode_plan
from .store import AssetStore

logger = logging.getLogger("cloudstream.executor")
tracer = trace.get_tracer("cloudstream.executor")

TRANSCODE_UNTIL = 50
PUBLISH_AT = 100


def status_for_progress(progress: float) -> AssetStatus:
    """
    Status is a pure function of the progress counter. The 90..99 band stays
    in uploading; only the finalize step may publish.
    """
    if progress >= PUBLISH_AT:
        return AssetStatus.PUBLISHED
    if progress < TRANSCODE_UNTIL:
        return AssetStatus.PROCESSING_TRANSCODE
    return AssetStatus.UPLOADING


@dataclass
class _Job:
    asset_id: str
    run_id: int
    step: float
    started_at: float
    cancelled: threading.Event = field(default_factory=threading.Event)
    done: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    last_status: AssetStatus = AssetStatus.PENDING


class PipelineExecutor:
    """
    Runs one background thread per admitted asset.

    A job sleeps on its own cancellation event between ticks, so its ticks are
    serialized and cancel() stops it before the next one. All record writes
    carry the job's run id; writes for a deleted record or a superseded run are
    no-ops.
    """

    def __init__(
        self,
        store: AssetStore,
        publisher: SimulatedPublisher,
        *,
        tick_interval_seconds: float = 0.2,
        step_range: tuple[float, float] = (1.0, 3.0),
        rng: random.Random | None = None,
        on_published: Callable[[AssetRecord], None] | None = None,
        on_failed: Callable[[AssetRecord, Exception], None] | None = None,
    ) -> None:
        self._store = store
        self._publisher = publisher
        self.tick_interval_seconds = tick_interval_seconds
        self.step_range = step_range
        self._rng = rng or random.Random()
        self._on_published = on_published
        self._on_failed = on_failed
        self._lock = threading.Lock()
        self._jobs: dict[str, _Job] = {}
        # Jobs whose thread has not exited yet, including cancelled ones.
        self._live: list[_Job] = []
        self._closed = False

    def _update_jobs_gauge(self) -> None:
        if PIPELINE_JOBS_ACTIVE is not None:
            PIPELINE_JOBS_ACTIVE.set(len(self._jobs))

    def is_active(self, asset_id: str) -> bool:
        with self._lock:
            return asset_id in self._jobs

    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._jobs)

    def start(self, asset_id: str) -> bool:
        """Admits a job for the asset. False if one is already active or the asset is gone."""
        with self._lock:
            if self._closed or asset_id in self._jobs:
                return False
            record = self._store.begin_run(asset_id)
            if record is None:
                return False
            low, high = self.step_range
            job = _Job(
                asset_id=asset_id,
                run_id=record.run_id,
                step=self._rng.uniform(low, high),
                started_at=time.monotonic(),
            )
            self._jobs[asset_id] = job
            self._live.append(job)
            self._update_jobs_gauge()

        plan = build_transcode_plan(record)
        logger.info(
            "Admitted %s (run %s, %s, vf=%s)",
            asset_id,
            job.run_id,
            plan.aspect_ratio,
            plan.video_filter,
            extra={"asset_id": asset_id},
        )
        thread = threading.Thread(
            target=self._run, args=(job,), name=f"pipeline-{asset_id}", daemon=True
        )
        job.thread = thread
        thread.start()
        return True

    def cancel(self, asset_id: str) -> bool:
        with self._lock:
            job = self._jobs.pop(asset_id, None)
            self._update_jobs_gauge()
        if job is None:
            return False
        job.cancelled.set()
        logger.info("Cancelled job for %s", asset_id, extra={"asset_id": asset_id})
        return True

    def wait(self, asset_id: str, timeout: float | None = None) -> bool:
        """
        Blocks until every thread working on the asset has exited, cancelled
        ones included. True if none is left running.
        """
        with self._lock:
            jobs = [job for job in self._live if job.asset_id == asset_id]
        deadline = None if timeout is None else time.monotonic() + timeout
        for job in jobs:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not job.done.wait(remaining):
                return False
        return True

    def _run(self, job: _Job) -> None:
        progress = 0.0
        try:
            while not job.cancelled.wait(self.tick_interval_seconds):
                progress += job.step
                if self._tick(job, progress):
                    break
        except Exception as exc:
            logger.exception("Job for %s failed", job.asset_id, extra={"asset_id": job.asset_id})
            failed = self._store.mark_failed(
                job.asset_id, job.run_id, str(exc) or exc.__class__.__name__
            )
            if failed is not None:
                self._count_transition(AssetStatus.FAILED)
                self._notify(self._on_failed, failed, exc)
        finally:
            with self._lock:
                if self._jobs.get(job.asset_id) is job:
                    del self._jobs[job.asset_id]
                self._live = [live for live in self._live if live is not job]
                self._update_jobs_gauge()
            job.done.set()

    def _tick(self, job: _Job, progress: float) -> bool:
        """Applies one tick. Returns True when the job should stop."""
        status = status_for_progress(progress)
        if status == AssetStatus.PUBLISHED:
            self._finalize(job)
            return True
        # Stored progress rounds half up; status follows the unrounded value.
        stored = min(int(progress + 0.5), 99)
        record = self._store.advance(job.asset_id, job.run_id, stored, status)
        if record is None:
            # Deleted or superseded by a newer run.
            return True
        if record.status != job.last_status:
            job.last_status = record.status
            self._count_transition(record.status)
        return False

    def _finalize(self, job: _Job) -> None:
        record = self._store.get(job.asset_id)
        if record is None or record.run_id != job.run_id or job.cancelled.is_set():
            return
        with tracer.start_as_current_span("cloudstream.publish") as span:
            span.set_attribute("cloudstream.asset_id", job.asset_id)
            span.set_attribute("cloudstream.run_id", job.run_id)
            span.set_attribute("cloudstream.category", record.metadata.category)
            result = self._publisher.publish(record)
            if job.cancelled.is_set():
                return
            published = self._store.finalize(
                job.asset_id, job.run_id, result.compressed_size_bytes, result.stream_url
            )
            if published is None:
                return
            span.set_attribute("cloudstream.compressed_size_bytes", published.compressed_size_bytes)
        self._count_transition(AssetStatus.PUBLISHED)
        if PIPELINE_JOB_DURATION is not None:
            PIPELINE_JOB_DURATION.observe(time.monotonic() - job.started_at)
        logger.info(
            "Published %s (%s bytes) at %s",
            job.asset_id,
            published.compressed_size_bytes,
            published.stream_url,
            extra={"asset_id": job.asset_id},
        )
        self._notify(self._on_published, published)

    def _count_transition(self, status: AssetStatus) -> None:
        if PIPELINE_TRANSITIONS is not None:
            PIPELINE_TRANSITIONS.labels(status.value).inc()

    def _notify(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Pipeline callback failed")

    def shutdown(self, timeout: float = 5.0) -> None:
        with self._lock:
            self._closed = True
            jobs = list(self._live)
            self._jobs.clear()
            self._update_jobs_gauge()
        for job in jobs:
            job.cancelled.set()
        deadline = time.monotonic() + timeout
        for job in jobs:
            if job.thread is not None and job.thread is not threading.current_thread():
                job.thread.join(max(0.0, deadline - time.monotonic()))
