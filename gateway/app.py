"""Tours gateway application factory."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Tuple

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .backends import BackendRegistry, ServiceDefinition, load_service_definitions
from .middleware.cors import register_cors_middleware
from .middleware.logging import setup_request_logging
from .observability import configure_metrics, configure_structured_logging, configure_tracing
from .routes import register_gateway_routes
from .services.keypoints import KeyPointService
from .utils.config import GatewayConfig, log_configuration_snapshot
from .utils.responses import error_response

HealthResult = Tuple[str, Dict[str, Any], int]


def _register_health_endpoints(app: Flask, backends: BackendRegistry) -> None:
    timeout = float(app.config.get("HEALTH_CHECK_TIMEOUT", 0.5))

    def _check_backend(name: str) -> HealthResult:
        client = backends.get(name)
        if client.is_ready(timeout=timeout):
            return "up", {"service": client.service.full_name}, 200
        return "down", {"service": client.service.full_name}, 503

    @app.route("/health")
    def health():
        dependencies: Dict[str, Dict[str, Any]] = {"gateway": {"status": "up", "details": {}}}
        http_status = 200
        for client in backends:
            status, details, status_code = _check_backend(client.name)
            dependencies[client.name] = {"status": status, "details": details}
            if status_code >= 500:
                http_status = 503

        payload = {
            "service": "tours-gateway",
            "status": "ok" if http_status == 200 else "error",
            "dependencies": dependencies,
        }
        return jsonify(payload), http_status


def _apply_config(app: Flask, config: GatewayConfig) -> None:
    app.config["APP_ENV"] = config.environment
    app.config["GATEWAY_ADDRESS"] = config.address
    app.config["STAKEHOLDERS_SERVICE_ADDRESS"] = config.stakeholders_service_address
    app.config["TOURS_SERVICE_ADDRESS"] = config.tours_service_address
    app.config["UPLOAD_DIR"] = config.upload_dir
    app.config["PUBLIC_BASE_URL"] = config.public_base_url
    app.config["UPLOAD_CLEANUP_ON_RPC_FAILURE"] = config.upload_cleanup_on_rpc_failure
    app.config["CORS_ALLOWED_ORIGIN"] = config.cors_allowed_origin
    app.config["GRPC_CONNECT_TIMEOUT"] = config.grpc_connect_timeout
    app.config["GRPC_CALL_TIMEOUT"] = config.grpc_call_timeout
    app.config["SERVICE_DEFINITIONS_DIR"] = config.definitions_dir
    app.config["LOG_LEVEL_NAME"] = config.log_level
    app.config["LOGGER_NAME"] = config.logger_name
    app.config["OTEL_EXPORTER_OTLP_ENDPOINT"] = config.otel_endpoint
    app.config["UPLOAD_MAX_BYTES"] = config.upload_max_bytes


def create_app(
    config: GatewayConfig,
    *,
    backends: BackendRegistry,
    definitions: Mapping[str, ServiceDefinition] | None = None,
) -> Flask:
    """Create the gateway application around already connected backends."""

    if definitions is None:
        definitions = load_service_definitions(config.definitions_dir)

    app = Flask(__name__)
    _apply_config(app, config)

    app.logger = configure_structured_logging(
        name=config.logger_name,
        level=config.log_level,
        aggregators=config.log_aggregators,
    )
    metrics = configure_metrics(app)
    setup_request_logging(app)
    register_cors_middleware(app, config.cors_allowed_origin)

    log_configuration_snapshot(
        logger=app.logger,
        environment=config.environment,
        config=app.config,
        keys_of_interest=[
            "APP_ENV",
            "GATEWAY_ADDRESS",
            "STAKEHOLDERS_SERVICE_ADDRESS",
            "TOURS_SERVICE_ADDRESS",
            "UPLOAD_DIR",
            "PUBLIC_BASE_URL",
            "UPLOAD_MAX_BYTES",
            "UPLOAD_CLEANUP_ON_RPC_FAILURE",
            "CORS_ALLOWED_ORIGIN",
            "GRPC_CONNECT_TIMEOUT",
            "GRPC_CALL_TIMEOUT",
            "SERVICE_DEFINITIONS_DIR",
        ],
    )

    keypoints = KeyPointService(
        upload_dir=config.upload_dir,
        public_base_url=config.public_base_url,
        tours=backends.get("tours"),
        cleanup_on_rpc_failure=config.upload_cleanup_on_rpc_failure,
        metrics=metrics,
    )
    app.extensions["backends"] = backends
    app.extensions["service_definitions"] = dict(definitions)
    app.extensions["keypoints"] = keypoints

    register_gateway_routes(app, definitions=definitions, backends=backends, keypoints=keypoints)
    _register_health_endpoints(app, backends)
    configure_tracing(app)

    @app.errorhandler(HTTPException)
    def http_error_handler(error: HTTPException):
        """Return JSON envelopes for Werkzeug HTTP exceptions."""

        status_code = error.code or 500
        message = error.description or error.name or "Error"
        return error_response(status_code, message)

    @app.errorhandler(Exception)
    def generic_error_handler(error: Exception):  # noqa: D401 - brief message sufficient
        """Return a JSON envelope for unexpected errors."""

        app.logger.exception("Unhandled exception", exc_info=error)
        return error_response(500, "Internal Server Error")

    return app
