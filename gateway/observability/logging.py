"""Structured logging configuration for the gateway."""

from __future__ import annotations

import json
import logging
import socket
from datetime import datetime, timezone
from logging import Handler, Logger
from logging.handlers import DatagramHandler, HTTPHandler, SocketHandler
from typing import Iterable
from urllib.parse import urlparse


DEFAULT_LOGGER_NAME = "tours.gateway"

_RESERVED_ATTRIBUTES = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


class JsonFormatter(logging.Formatter):
    """A JSON formatter suited for structured logging."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - obvious
        payload: dict[str, object] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRIBUTES or key in payload or key.startswith("_"):
                continue
            payload[key] = value

        return json.dumps(
            payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=str
        )


def _create_network_handler(url: str) -> Handler:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        raise ValueError(f"Invalid handler URL: {url}")

    host = parsed.hostname
    port = parsed.port or (443 if parsed.scheme == "https" else 80)

    if parsed.scheme in {"tcp", "socket"}:
        handler = SocketHandler(host, port)
        handler.closeOnError = True  # type: ignore[attr-defined]
        return handler
    if parsed.scheme in {"udp", "datagram"}:
        return DatagramHandler(host, port)
    if parsed.scheme in {"http", "https"}:
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return HTTPHandler(
            host=f"{host}:{port}",
            url=path,
            method="POST",
            secure=parsed.scheme == "https",
        )
    raise ValueError(f"Unsupported handler scheme: {parsed.scheme}")


def configure_structured_logging(
    *,
    name: str = DEFAULT_LOGGER_NAME,
    level: str | int = logging.INFO,
    aggregators: Iterable[str] = (),
) -> Logger:
    """Configure the gateway logger with JSON output.

    The ``gateway`` package logger is attached to the same handlers so module
    level loggers (``gateway.backends.connector`` and friends) share the
    output.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = JsonFormatter()
    handlers: list[Handler] = []

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    fallback_logger = logging.getLogger(__name__)
    for aggregator in aggregators:
        aggregator = aggregator.strip()
        if not aggregator:
            continue
        try:
            handler = _create_network_handler(aggregator)
        except (OSError, ValueError, socket.error) as exc:
            fallback_logger.warning("Failed to configure log aggregator %s: %s", aggregator, exc)
            continue
        handler.setFormatter(formatter)
        handlers.append(handler)

    logger = logging.getLogger(name)
    for target in {logger, logging.getLogger("gateway")}:
        target.handlers = list(handlers)
        target.setLevel(level)
        target.propagate = False
    return logger
