"""Process entry point: dial the backends, serve HTTP, stop on SIGINT/SIGTERM."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from werkzeug.serving import BaseWSGIServer, make_server

from .app import create_app
from .backends import BackendConnectionError, ServiceDefinitionError, connect_backends, load_service_definitions
from .observability import configure_structured_logging
from .utils.config import GatewayConfig, load_environment_settings, load_gateway_config, split_listen_address
from .utils.lifecycle import ShutdownRegistry, ShutdownSignal

logger = logging.getLogger(__name__)


def start_server(app, address: str) -> tuple[BaseWSGIServer, threading.Thread]:
    """Bind ``address`` and serve ``app`` from a background thread.

    Each connection is handled on its own thread.
    """

    host, port = split_listen_address(address)
    server = make_server(host, port, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="gateway-http", daemon=True)
    thread.start()
    return server, thread


def stop_server(server: BaseWSGIServer) -> None:
    """Stop accepting connections and release the listening socket.

    In-flight requests are not drained.
    """

    server.shutdown()
    server.server_close()


def run(config: GatewayConfig | None = None, shutdown: ShutdownSignal | None = None) -> int:
    """Run the gateway until a shutdown signal arrives; return the exit code."""

    if config is None:
        try:
            config = load_gateway_config(
                load_environment_settings(project_root=Path.cwd())
            )
        except ValueError as exc:
            configure_structured_logging().critical("Invalid gateway configuration: %s", exc)
            return 1
    log = configure_structured_logging(
        name=config.logger_name, level=config.log_level, aggregators=config.log_aggregators
    )

    if shutdown is None:
        shutdown = ShutdownSignal()
        shutdown.install(log)

    try:
        definitions = load_service_definitions(config.definitions_dir)
        backends = connect_backends(
            {
                "stakeholders": config.stakeholders_service_address,
                "tours": config.tours_service_address,
            },
            definitions,
            connect_timeout=config.grpc_connect_timeout,
            call_timeout=config.grpc_call_timeout,
        )
    except (ServiceDefinitionError, BackendConnectionError) as exc:
        log.critical("Gateway startup failed: %s", exc)
        return 1

    try:
        app = create_app(config, backends=backends, definitions=definitions)
        server, _thread = start_server(app, config.address)
    except (OSError, ValueError) as exc:
        log.critical("Failed to start HTTP listener on %r: %s", config.address, exc)
        backends.close()
        return 1

    log.info("Starting gateway", extra={"address": config.address})
    # Listener first, then the channels it was using.
    tasks = ShutdownRegistry()
    tasks.add("http_server", lambda: stop_server(server))
    tasks.add("backends", backends.close)

    shutdown.wait()
    log.info("Stopping gateway", extra={"reason": shutdown.received})

    errors = tasks.fire(logger=log)
    if errors:
        log.critical("Error while stopping gateway: %s", errors[0][1])
        return 1
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
