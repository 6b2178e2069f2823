from __future__ import annotations

import logging
import os
import secrets
import time

import sentry_sdk
from flask import Flask, g, has_request_context, request
from sentry_sdk.integrations.flask import FlaskIntegration

from .config import load_flask_config
from .logging_config import REQUEST_ID_HEADER, REQUEST_ID_RE, configure_logging
from .metrics import (
    METRICS_ENABLED,
    REQUEST_COUNT,
    REQUEST_ERRORS,
    REQUEST_IN_FLIGHT,
    REQUEST_LATENCY,
)
from .middleware.rate_limit import RATE_LIMIT_SUBMISSIONS, init_rate_limiter
from .routes.assets import create_assets_blueprint
from .routes.health import health_bp
from .routes.metrics import metrics_bp
from .routes.pipeline import create_pipeline_blueprint
from .services.container import ServiceContainer, get_services, init_services
from .tracing import configure_tracing

logger = logging.getLogger("cloudstream.server")

SENTRY_DSN = (os.environ.get("CLOUDSTREAM_SENTRY_DSN") or "").strip()
SENTRY_ENV = (
    os.environ.get("CLOUDSTREAM_SENTRY_ENV") or os.environ.get("SENTRY_ENVIRONMENT") or "production"
).strip()
SENTRY_RELEASE = (os.environ.get("CLOUDSTREAM_RELEASE") or "").strip() or None
try:
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get("CLOUDSTREAM_SENTRY_TRACES_SAMPLE_RATE", "0"))
except (TypeError, ValueError):
    SENTRY_TRACES_SAMPLE_RATE = 0.0


def _generate_request_id(raw: str | None) -> str:
    candidate = (raw or "").strip()
    if candidate and REQUEST_ID_RE.fullmatch(candidate):
        return candidate
    return secrets.token_urlsafe(12)


def _sentry_before_send(event, _hint):
    if has_request_context():
        request_id = getattr(g, "request_id", None)
        if request_id:
            event.setdefault("tags", {})["request_id"] = request_id
    return event


def _init_sentry() -> None:
    if not SENTRY_DSN:
        return
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENV,
        release=SENTRY_RELEASE,
        integrations=[FlaskIntegration()],
        traces_sample_rate=max(0.0, SENTRY_TRACES_SAMPLE_RATE),
        send_default_pii=False,
        before_send=_sentry_before_send,
    )


def _record_request_metrics(response) -> None:
    if not METRICS_ENABLED or REQUEST_COUNT is None:
        return
    if getattr(g, "_metrics_done", False):
        return
    g._metrics_done = True
    if getattr(g, "_metrics_inflight", False):
        if REQUEST_IN_FLIGHT is not None:
            REQUEST_IN_FLIGHT.dec()
        g._metrics_inflight = False

    endpoint = request.endpoint or "unknown"
    method = request.method
    status = str(response.status_code)
    REQUEST_COUNT.labels(method, endpoint, status).inc()
    if REQUEST_LATENCY is not None and hasattr(g, "_request_started_at"):
        REQUEST_LATENCY.labels(method, endpoint).observe(time.perf_counter() - g._request_started_at)
    if REQUEST_ERRORS is not None and response.status_code >= 400:
        REQUEST_ERRORS.labels(method, endpoint, status).inc()


def _register_request_hooks(app: Flask) -> None:
    @app.before_request
    def _init_request_context():
        g.request_id = _generate_request_id(request.headers.get(REQUEST_ID_HEADER))
        g._request_started_at = time.perf_counter()
        if METRICS_ENABLED and REQUEST_IN_FLIGHT is not None:
            REQUEST_IN_FLIGHT.inc()
            g._metrics_inflight = True

    @app.after_request
    def _finalize_request(response):
        if hasattr(g, "request_id"):
            response.headers[REQUEST_ID_HEADER] = g.request_id
        _record_request_metrics(response)
        return response

    @app.teardown_request
    def _teardown_request(_exc):
        if METRICS_ENABLED and getattr(g, "_metrics_inflight", False) and REQUEST_IN_FLIGHT is not None:
            REQUEST_IN_FLIGHT.dec()
            g._metrics_inflight = False


def create_app(
    services: ServiceContainer | None = None, config_overrides: dict | None = None
) -> Flask:
    """
    Builds the pipeline API. ``services`` replaces the container built from
    the environment, which is how tests run the pipeline with a fast clock.
    """
    app = Flask(__name__)
    for key, value in load_flask_config().items():
        app.config.setdefault(key, value)
    if config_overrides:
        app.config.update(config_overrides)
    # Arabic category labels go out unescaped
    app.json.ensure_ascii = False

    configure_logging(app)
    configure_tracing(app)
    _init_sentry()
    init_services(app, services)
    init_rate_limiter(app)
    _register_request_hooks(app)

    app.register_blueprint(health_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(create_assets_blueprint(RATE_LIMIT_SUBMISSIONS))
    app.register_blueprint(create_pipeline_blueprint())

    logger.info("CloudStream pipeline API ready")
    return app


def shutdown_app(app: Flask) -> None:
    with app.app_context():
        get_services().pipeline.shutdown()
