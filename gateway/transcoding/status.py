"""gRPC status to HTTP response mapping."""

from __future__ import annotations

from typing import Any

import grpc
from flask import jsonify

_HTTP_STATUS_BY_CODE = {
    grpc.StatusCode.OK: 200,
    grpc.StatusCode.CANCELLED: 499,
    grpc.StatusCode.UNKNOWN: 500,
    grpc.StatusCode.INVALID_ARGUMENT: 400,
    grpc.StatusCode.DEADLINE_EXCEEDED: 504,
    grpc.StatusCode.NOT_FOUND: 404,
    grpc.StatusCode.ALREADY_EXISTS: 409,
    grpc.StatusCode.PERMISSION_DENIED: 403,
    grpc.StatusCode.UNAUTHENTICATED: 401,
    grpc.StatusCode.RESOURCE_EXHAUSTED: 429,
    grpc.StatusCode.FAILED_PRECONDITION: 400,
    grpc.StatusCode.ABORTED: 409,
    grpc.StatusCode.OUT_OF_RANGE: 400,
    grpc.StatusCode.UNIMPLEMENTED: 501,
    grpc.StatusCode.INTERNAL: 500,
    grpc.StatusCode.UNAVAILABLE: 503,
    grpc.StatusCode.DATA_LOSS: 500,
}


def http_status_from_code(code: grpc.StatusCode | None) -> int:
    """Return the HTTP status grpc-gateway uses for ``code``."""

    if code is None:
        return 500
    return _HTTP_STATUS_BY_CODE.get(code, 500)


def rpc_status(exc: grpc.RpcError) -> tuple[grpc.StatusCode, str]:
    """Extract the status code and detail message of a failed call."""

    code_fn = getattr(exc, "code", None)
    details_fn = getattr(exc, "details", None)
    code = code_fn() if callable(code_fn) else None
    details = details_fn() if callable(details_fn) else None
    return code or grpc.StatusCode.UNKNOWN, details or str(exc)


def status_response(code: grpc.StatusCode, message: str, details: list[Any] | None = None):
    """Build the JSON error body returned for a failed transcoded call."""

    response = jsonify({"code": code.value[0], "message": message, "details": details or []})
    response.status_code = http_status_from_code(code)
    return response
