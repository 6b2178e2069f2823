from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from ..errors import StateError, ValidationError
from ..middleware.rate_limit import limiter
from ..services.container import get_services
from ..utils.validation import is_valid_asset_id

logger = logging.getLogger("cloudstream.assets")


def _invalid_id_response():
    return jsonify({"error": "Invalid asset id"}), 400


def _not_found_response():
    return jsonify({"error": "Asset not found"}), 404


def _read_json_object():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def create_assets_blueprint(rate_limit_submissions):
    bp = Blueprint("assets", __name__)

    @bp.route("/api/assets", methods=["GET"])
    def list_assets():
        try:
            records = get_services().pipeline.list()
        except Exception as exc:
            logger.error("Failed to list assets: %s", exc)
            return jsonify({"error": "Internal server error"}), 500
        resp = jsonify({"assets": [record.to_dict() for record in records]})
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/assets", methods=["POST"])
    @limiter.limit(rate_limit_submissions)
    def submit_asset():
        try:
            payload = _read_json_object()
            record = get_services().pipeline.submit(
                payload.get("source_name"),
                payload.get("original_size_bytes"),
                payload.get("metadata"),
                auto_enrich=bool(payload.get("auto_enrich")),
            )
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        except Exception as exc:
            logger.error("Failed to submit asset: %s", exc)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify(record.to_dict()), 201

    @bp.route("/api/assets/<asset_id>", methods=["GET"])
    def get_asset(asset_id):
        if not is_valid_asset_id(asset_id):
            return _invalid_id_response()
        record = get_services().pipeline.get(asset_id)
        if record is None:
            return _not_found_response()
        resp = jsonify(record.to_dict())
        resp.headers["Cache-Control"] = "no-store"
        return resp

    @bp.route("/api/assets/<asset_id>", methods=["PUT"])
    @limiter.limit(rate_limit_submissions)
    def resubmit_asset(asset_id):
        if not is_valid_asset_id(asset_id):
            return _invalid_id_response()
        try:
            payload = _read_json_object()
            metadata = payload.get("metadata", payload)
            record = get_services().pipeline.resubmit(asset_id, metadata)
        except ValidationError as exc:
            return jsonify({"error": str(exc)}), 400
        except Exception as exc:
            logger.error("Failed to resubmit asset %s: %s", asset_id, exc)
            return jsonify({"error": "Internal server error"}), 500
        if record is None:
            return _not_found_response()
        return jsonify(record.to_dict())

    @bp.route("/api/assets/<asset_id>", methods=["DELETE"])
    def delete_asset(asset_id):
        if not is_valid_asset_id(asset_id):
            return _invalid_id_response()
        try:
            deleted = get_services().pipeline.delete(asset_id)
        except Exception as exc:
            logger.error("Failed to delete asset %s: %s", asset_id, exc)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify({"deleted": deleted})

    @bp.route("/api/assets/<asset_id>/retry", methods=["POST"])
    def retry_asset(asset_id):
        if not is_valid_asset_id(asset_id):
            return _invalid_id_response()
        try:
            record = get_services().pipeline.retry(asset_id)
        except StateError as exc:
            return jsonify({"error": str(exc)}), 409
        except Exception as exc:
            logger.error("Failed to retry asset %s: %s", asset_id, exc)
            return jsonify({"error": "Internal server error"}), 500
        if record is None:
            return _not_found_response()
        return jsonify(record.to_dict())

    @bp.route("/api/assets/<asset_id>/transcode-plan", methods=["GET"])
    def transcode_plan(asset_id):
        if not is_valid_asset_id(asset_id):
            return _invalid_id_response()
        plan = get_services().pipeline.transcode_plan(asset_id)
        if plan is None:
            return _not_found_response()
        return jsonify(plan.to_dict())

    return bp
