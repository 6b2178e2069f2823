from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from ..errors import EnrichmentError
from ..services.container import get_services
from ..utils.validation import _parse_int, is_valid_asset_id

logger = logging.getLogger("cloudstream.api")


def create_pipeline_blueprint():
    bp = Blueprint("pipeline", __name__)

    @bp.route("/api/pipeline/process", methods=["POST"])
    def process_pending():
        try:
            started = get_services().pipeline.process_pending()
        except Exception as exc:
            logger.error("Failed to process pending assets: %s", exc)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify({"started": started})

    @bp.route("/api/enrich", methods=["POST"])
    def enrich():
        payload = request.get_json(silent=True) or {}
        source_name = str(payload.get("source_name") or "").strip() if isinstance(payload, dict) else ""
        if not source_name:
            return jsonify({"error": "source_name is required"}), 400
        try:
            suggestion = get_services().pipeline.enrich(source_name)
        except EnrichmentError as exc:
            return jsonify({"error": str(exc), "attempts": exc.attempts}), 502
        except Exception as exc:
            logger.error("Enrichment failed for %s: %s", source_name, exc)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify(suggestion.to_dict())

    @bp.route("/api/stats")
    def storage_stats():
        resp = jsonify(get_services().pipeline.stats().to_dict())
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/categories")
    def categories():
        return jsonify({"categories": get_services().pipeline.categories()})

    @bp.route("/api/notifications")
    def notifications():
        events = get_services().pipeline.list_notifications()
        resp = jsonify({"notifications": [event.to_dict() for event in events]})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/activity")
    def activity():
        limit = _parse_int(request.args.get("limit")) or 100
        asset_id = (request.args.get("asset_id") or "").strip() or None
        if asset_id is not None and not is_valid_asset_id(asset_id):
            return jsonify({"error": "Invalid asset id"}), 400
        try:
            events = get_services().pipeline.recent_activity(limit=limit, asset_id=asset_id)
        except Exception as exc:
            logger.error("Failed to read activity: %s", exc)
            return jsonify({"error": "Internal server error"}), 500
        resp = jsonify({"events": events})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return bp
