import os

from flask import Blueprint, jsonify

from ..services.container import get_services

health_bp = Blueprint("health", __name__)

VERSION = os.environ.get("CLOUDSTREAM_VERSION", "0.1.0-dev")


@health_bp.route("/health")
def health_check():
    status = {"status": "healthy", "services": {}}
    overall_healthy = True
    pipeline = get_services().pipeline

    # Activity log (SQLite)
    if pipeline.activity is None or not pipeline.activity.enabled:
        status["services"]["activity_db"] = "disabled"
    else:
        try:
            pipeline.activity.ping()
            status["services"]["activity_db"] = "ok"
        except Exception as exc:
            status["services"]["activity_db"] = f"error: {exc}"
            overall_healthy = False

    status["services"]["executor"] = {"active_jobs": len(pipeline.executor.active_ids())}
    status["services"]["enrichment"] = "remote" if pipeline.enricher.endpoint else "local"

    if not overall_healthy:
        status["status"] = "unhealthy"
        return jsonify(status), 503

    return jsonify(status)


@health_bp.route("/version")
def version():
    return jsonify(
        {
            "version": VERSION,
            "release": os.environ.get("CLOUDSTREAM_RELEASE", "none"),
            "environment": os.environ.get("CLOUDSTREAM_ENV", "production"),
        }
    )
