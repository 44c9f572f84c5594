"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from typing import Dict, Iterable

from flask import Flask
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[import-not-found]
    OTLPSpanExporter,
)
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)


_provider: TracerProvider | None = None


def _parse_headers(raw: str | Iterable[str] | None) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if raw is None:
        return headers
    if isinstance(raw, str):
        items = [item.strip() for item in raw.split(",") if item.strip()]
    else:
        items = list(raw)
    for item in items:
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        headers[key.strip()] = value.strip()
    return headers


def _build_exporter(app: Flask) -> SpanExporter | None:
    if exporter := app.config.get("OTEL_SPAN_EXPORTER"):
        return exporter

    endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        # Spans are still created for log correlation, just not exported.
        return None
    headers = _parse_headers(app.config.get("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def configure_tracing(app: Flask) -> TracerProvider:
    """Configure OpenTelemetry tracing for the Flask application."""

    global _provider

    if app.extensions.get("tracing_configured"):
        return app.extensions["tracer_provider"]

    if _provider is None:
        existing_provider = trace.get_tracer_provider()
        if isinstance(existing_provider, TracerProvider):
            _provider = existing_provider
        else:
            service_name = app.config.get("OTEL_SERVICE_NAME") or "tours-gateway"
            _provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
            trace.set_tracer_provider(_provider)

    exporter = _build_exporter(app)
    if exporter is not None:
        processor_class = (
            SimpleSpanProcessor if app.config.get("OTEL_USE_SIMPLE_PROCESSOR") else BatchSpanProcessor
        )
        _provider.add_span_processor(processor_class(exporter))

    if not app.extensions.get("otel_flask_instrumented"):
        FlaskInstrumentor().instrument_app(app, excluded_urls=r"/health,/metrics")
        app.extensions["otel_flask_instrumented"] = True
    app.extensions["tracing_configured"] = True
    app.extensions["tracer_provider"] = _provider
    return _provider
