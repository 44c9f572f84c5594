"""Request logging middleware for the gateway."""

import time
import uuid
from typing import Any, Dict

from flask import Flask, Response, g, request
from opentelemetry import trace


def setup_request_logging(app: Flask) -> None:
    """Attach access-log hooks to the provided Flask application."""

    @app.before_request
    def _start_timer() -> None:
        g.request_started_at = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def _log_request(response: Response) -> Response:
        start = getattr(g, "request_started_at", None)
        duration_ms = None
        if start is not None:
            duration_ms = (time.perf_counter() - start) * 1000

        route = getattr(request.url_rule, "rule", request.path)
        log_record: Dict[str, Any] = {
            "method": request.method,
            "path": request.full_path.rstrip("?") or request.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 3) if duration_ms is not None else None,
            "ip": request.remote_addr,
            "request_id": getattr(g, "request_id", None),
            "route": route,
            "user_agent": request.headers.get("User-Agent"),
        }

        context = trace.get_current_span().get_span_context()
        if context and context.trace_id:
            log_record["trace_id"] = format(context.trace_id, "032x")

        app.logger.info("request completed", extra=log_record)

        metrics = app.extensions.get("metrics")
        if metrics:
            metrics.observe_http_request(
                method=request.method,
                endpoint=route,
                status=response.status_code,
                duration_seconds=(duration_ms / 1000.0) if duration_ms is not None else None,
            )

        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)

        return response
