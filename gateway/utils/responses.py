"""Utilities for building gateway responses."""

from typing import Any, Dict, Optional

from flask import Response, current_app, jsonify


def error_response(status_code: int, message: str, details: Optional[Dict[str, Any]] = None):
    """Return a JSON error envelope with the provided status code and message."""

    payload: Dict[str, Any] = {"error": {"code": status_code, "message": message}}
    if details:
        payload["error"]["details"] = details
    response = jsonify(payload)
    response.status_code = status_code
    return response


def text_error_response(status_code: int, message: str) -> Response:
    """Return a plain-text error body, newline terminated."""

    return current_app.response_class(
        f"{message}\n", status=status_code, mimetype="text/plain"
    )
