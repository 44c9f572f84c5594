"""HTTP/JSON to gRPC transcoding layer."""

from .invoke import call_backend  # noqa: F401
from .mux import TranscodingError, build_request_payload, build_transcoding_blueprint  # noqa: F401
from .status import http_status_from_code, rpc_status, status_response  # noqa: F401

__all__ = [
    "TranscodingError",
    "build_request_payload",
    "build_transcoding_blueprint",
    "call_backend",
    "http_status_from_code",
    "rpc_status",
    "status_response",
]
