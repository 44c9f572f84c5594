"""Fixed-origin CORS headers for the browser frontend."""

from __future__ import annotations

from flask import Flask, Response, request

ALLOWED_METHODS = "GET, POST, OPTIONS, PATCH"
ALLOWED_HEADERS = "Content-Type, Authorization"


def register_cors_middleware(app: Flask, origin: str) -> None:
    """Stamp CORS headers on every response and answer pre-flights directly.

    Pre-flight ``OPTIONS`` requests never reach routing, so they succeed for
    unknown paths as well.
    """

    @app.before_request
    def _short_circuit_preflight():
        if request.method == "OPTIONS":
            return app.response_class(status=200)
        return None

    @app.after_request
    def _apply_cors_headers(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
        response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        return response
