from __future__ import annotations

import os

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, multiprocess

from .config import parse_bool

METRICS_ENABLED = parse_bool(os.environ.get("CLOUDSTREAM_METRICS_ENABLED", "true"))
PROMETHEUS_MULTIPROC_DIR = (os.environ.get("PROMETHEUS_MULTIPROC_DIR") or "").strip()
PROMETHEUS_MULTIPROC_ENABLED = bool(PROMETHEUS_MULTIPROC_DIR)


def _get_metrics_registry() -> CollectorRegistry:
    if PROMETHEUS_MULTIPROC_ENABLED:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return REGISTRY


if METRICS_ENABLED:
    REQUEST_LATENCY = Histogram(
        "cloudstream_http_request_duration_seconds",
        "HTTP request latency",
        ["method", "endpoint"],
    )
    REQUEST_COUNT = Counter(
        "cloudstream_http_requests_total",
        "Total HTTP requests",
        ["method", "endpoint", "status"],
    )
    REQUEST_ERRORS = Counter(
        "cloudstream_http_request_errors_total",
        "HTTP error responses",
        ["method", "endpoint", "status"],
    )
    REQUEST_IN_FLIGHT = Gauge(
        "cloudstream_http_requests_in_flight",
        "In-flight HTTP requests",
    )
    PIPELINE_JOBS_ACTIVE = Gauge(
        "cloudstream_pipeline_jobs_active",
        "Pipeline jobs currently running",
    )
    PIPELINE_TRANSITIONS = Counter(
        "cloudstream_pipeline_transitions_total",
        "Asset status transitions applied by the pipeline",
        ["status"],
    )
    PIPELINE_JOB_DURATION = Histogram(
        "cloudstream_pipeline_job_duration_seconds",
        "Time from job admission to publication",
        buckets=(1, 5, 10, 20, 30, 60, 120, 300),
    )
    ENRICHMENT_COUNT = Counter(
        "cloudstream_enrichment_total",
        "Metadata enrichment attempts",
        ["status"],
    )
    STORAGE_USED_BYTES = Gauge(
        "cloudstream_storage_used_bytes",
        "Bytes used by published assets",
    )
    STORAGE_PUBLISHED_ASSETS = Gauge(
        "cloudstream_storage_published_assets",
        "Number of published assets",
    )
else:
    REQUEST_LATENCY = None
    REQUEST_COUNT = None
    REQUEST_ERRORS = None
    REQUEST_IN_FLIGHT = None
    PIPELINE_JOBS_ACTIVE = None
    PIPELINE_TRANSITIONS = None
    PIPELINE_JOB_DURATION = None
    ENRICHMENT_COUNT = None
    STORAGE_USED_BYTES = None
    STORAGE_PUBLISHED_ASSETS = None
