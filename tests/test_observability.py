"""Tests covering observability helpers."""

from __future__ import annotations

import json
import logging

import grpc
from opentelemetry import trace
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from gateway.observability import configure_structured_logging
from gateway.observability import tracing as tracing_module
from gateway.observability.logging import JsonFormatter


def test_metrics_endpoint_records_requests_and_rpcs(client, tours):
    tours.fail("GetTour", grpc.StatusCode.NOT_FOUND, "missing")
    client.get("/tours/t-1")
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    payload = response.data.decode()
    assert "tours_gateway_http_requests_total" in payload
    assert 'endpoint="/tours/<id>"' in payload
    assert 'tours_gateway_backend_rpc_failures_total{backend="tours",method="GetTour",code="NOT_FOUND"} 1.0' in payload


def test_health_reports_backend_readiness(client, tours):
    healthy = client.get("/health")
    assert healthy.status_code == 200
    assert healthy.get_json()["dependencies"]["tours"]["status"] == "up"

    tours.ready = False
    degraded = client.get("/health")
    assert degraded.status_code == 503
    assert degraded.get_json()["status"] == "error"
    assert degraded.get_json()["dependencies"]["tours"]["status"] == "down"


def test_backend_calls_create_spans(app, tours):
    exporter = InMemorySpanExporter()
    app.config["OTEL_SPAN_EXPORTER"] = exporter
    app.config["OTEL_USE_SIMPLE_PROCESSOR"] = True
    app.extensions.pop("tracing_configured", None)
    tracing_module.configure_tracing(app)

    response = app.test_client().get("/tours/t-2")
    assert response.status_code == 200

    trace.get_tracer_provider().force_flush()
    spans = [span for span in exporter.get_finished_spans() if span.name == "backend.call"]
    assert spans
    assert spans[-1].attributes["rpc.method"] == "GetTour"
    assert spans[-1].attributes["rpc.service"] == "tours.ToursService"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("tours.gateway", logging.WARNING, __file__, 1, "Uploaded file is empty", None, None)
    record.stored_as = "abc.jpg"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "Uploaded file is empty"
    assert payload["stored_as"] == "abc.jpg"


def test_structured_logging_skips_bad_aggregators():
    logger = configure_structured_logging(
        name="tours.gateway.test", level="debug", aggregators=["ftp://logs:21", "udp://127.0.0.1:5140"]
    )

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2
    assert logger.propagate is False
