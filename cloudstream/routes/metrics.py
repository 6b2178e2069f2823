from __future__ import annotations

from flask import Blueprint, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..metrics import METRICS_ENABLED, PIPELINE_JOBS_ACTIVE, _get_metrics_registry
from ..middleware.rate_limit import limiter
from ..services.container import get_services

metrics_bp = Blueprint("metrics", __name__)


def _refresh_pipeline_gauges() -> None:
    # Storage gauges follow store mutations; the job gauge is re-read on scrape.
    if PIPELINE_JOBS_ACTIVE is None:
        return
    pipeline = get_services().pipeline
    PIPELINE_JOBS_ACTIVE.set(len(pipeline.executor.active_ids()))


@metrics_bp.route("/metrics")
@limiter.exempt
def metrics():
    if not METRICS_ENABLED:
        return jsonify({"error": "Metrics disabled"}), 404
    _refresh_pipeline_gauges()
    registry = _get_metrics_registry()
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
