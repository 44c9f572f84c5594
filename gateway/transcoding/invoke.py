"""Instrumented backend calls shared by every route."""

from __future__ import annotations

import time

import grpc
from google.protobuf.message import Message
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..backends import BackendClient
from ..observability import MetricsRegistry
from .status import rpc_status

tracer = trace.get_tracer(__name__)


def call_backend(
    client: BackendClient,
    method_name: str,
    request: Message,
    *,
    metrics: MetricsRegistry | None = None,
) -> Message:
    """Invoke ``method_name`` on ``client`` inside a span, recording latency.

    ``grpc.RpcError`` is re-raised after being recorded.
    """

    attributes = {
        "rpc.system": "grpc",
        "rpc.service": client.service.full_name,
        "rpc.method": method_name,
    }
    with tracer.start_as_current_span("backend.call", attributes=attributes) as span:
        start = time.perf_counter()
        try:
            response = client.invoke(method_name, request)
        except grpc.RpcError as exc:
            code, details = rpc_status(exc)
            span.record_exception(exc)
            span.set_attribute("rpc.grpc.status_code", code.value[0])
            span.set_status(Status(status_code=StatusCode.ERROR, description=details))
            if metrics:
                metrics.observe_rpc(
                    backend=client.name,
                    method=method_name,
                    code=code.name,
                    duration_seconds=time.perf_counter() - start,
                )
            raise

        span.set_attribute("rpc.grpc.status_code", 0)
        if metrics:
            metrics.observe_rpc(
                backend=client.name,
                method=method_name,
                code="OK",
                duration_seconds=time.perf_counter() - start,
            )
        return response
