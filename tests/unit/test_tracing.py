from __future__ import annotations

from unittest.mock import patch

from flask import Flask

from cloudstream import tracing


def test_tracing_disabled_by_default(monkeypatch):
    monkeypatch.setenv("CLOUDSTREAM_OTEL_ENABLED", "false")
    with patch.object(tracing, "FlaskInstrumentor") as flask_instr, patch.object(
        tracing.trace, "set_tracer_provider"
    ) as set_provider:
        tracing.configure_tracing(Flask(__name__))

    flask_instr.assert_not_called()
    set_provider.assert_not_called()


def test_tracing_with_otlp_endpoint(monkeypatch):
    monkeypatch.setenv("CLOUDSTREAM_OTEL_ENABLED", "true")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317")
    app = Flask(__name__)

    with patch.object(tracing, "OTLPSpanExporter") as exporter, patch.object(
        tracing, "BatchSpanProcessor"
    ), patch.object(tracing, "FlaskInstrumentor") as flask_instr, patch.object(
        tracing, "RequestsInstrumentor"
    ) as requests_instr, patch.object(
        tracing.trace, "set_tracer_provider"
    ) as set_provider:
        tracing.configure_tracing(app)

    exporter.assert_called_once_with(endpoint="http://collector:4317", insecure=True)
    set_provider.assert_called_once()
    flask_instr.return_value.instrument_app.assert_called_once_with(app)
    requests_instr.return_value.instrument.assert_called_once()


def test_tracing_console_exporter_without_endpoint(monkeypatch):
    monkeypatch.setenv("CLOUDSTREAM_OTEL_ENABLED", "true")
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

    with patch.object(tracing, "OTLPSpanExporter") as exporter, patch.object(
        tracing, "ConsoleSpanExporter"
    ) as console, patch.object(tracing, "BatchSpanProcessor"), patch.object(
        tracing, "FlaskInstrumentor"
    ), patch.object(
        tracing, "RequestsInstrumentor"
    ), patch.object(
        tracing.trace, "set_tracer_provider"
    ):
        tracing.configure_tracing(Flask(__name__))

    exporter.assert_not_called()
    console.assert_called_once()


def test_tracing_resource_carries_service_identity(monkeypatch):
    monkeypatch.setenv("CLOUDSTREAM_OTEL_ENABLED", "true")
    monkeypatch.setenv("CLOUDSTREAM_OTEL_SERVICE_NAME", "cloudstream-test")
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

    with patch.object(tracing, "Resource") as resource, patch.object(
        tracing, "_package_version", return_value="9.9.9"
    ), patch.object(tracing, "TracerProvider"), patch.object(
        tracing, "BatchSpanProcessor"
    ), patch.object(tracing, "ConsoleSpanExporter"), patch.object(
        tracing, "FlaskInstrumentor"
    ), patch.object(
        tracing, "RequestsInstrumentor"
    ), patch.object(
        tracing.trace, "set_tracer_provider"
    ):
        tracing.configure_tracing(Flask(__name__))

    resource.create.assert_called_once_with(
        {"service.name": "cloudstream-test", "service.version": "9.9.9"}
    )
