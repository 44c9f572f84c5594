"""Configuration helpers for environment-aware setup."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping
import os

from dotenv import dotenv_values

__all__ = [
    "DEFAULT_DEFINITIONS_DIR",
    "EnvironmentSettings",
    "GatewayConfig",
    "load_environment_settings",
    "load_gateway_config",
    "log_configuration_snapshot",
    "split_listen_address",
]

DEFAULT_DEFINITIONS_DIR = Path(__file__).resolve().parent.parent / "definitions"
DEFAULT_UPLOAD_MAX_BYTES = 10 << 20


@dataclass(frozen=True)
class EnvironmentSettings:
    """Represents the environment configuration detected at runtime."""

    name: str
    loaded_files: tuple[str, ...]
    file_values: Mapping[str, str]

    def get(self, key: str) -> str | None:
        """Return the value for ``key``, preferring the process environment."""

        value = os.getenv(key)
        if value is not None:
            return value
        return self.file_values.get(key)


@dataclass(frozen=True)
class GatewayConfig:
    """Runtime settings of the gateway process."""

    address: str
    stakeholders_service_address: str
    tours_service_address: str
    upload_dir: str = "/app/uploads"
    public_base_url: str = "http://localhost:8080"
    upload_max_bytes: int = DEFAULT_UPLOAD_MAX_BYTES
    upload_cleanup_on_rpc_failure: bool = False
    cors_allowed_origin: str = "http://localhost:4200"
    grpc_connect_timeout: float | None = None
    grpc_call_timeout: float | None = None
    definitions_dir: str = str(DEFAULT_DEFINITIONS_DIR)
    log_level: str = "INFO"
    logger_name: str = "tours.gateway"
    log_aggregators: tuple[str, ...] = ()
    otel_endpoint: str = ""
    environment: str = "development"


def load_environment_settings(
    *, env: str | None = None, project_root: str | Path | None = None
) -> EnvironmentSettings:
    """Load environment settings supporting layered ``.env`` files."""

    root = Path(project_root or Path.cwd())
    name = (env or os.getenv("APP_ENV") or os.getenv("FLASK_ENV") or "development").strip()
    name = name or "development"
    ordered_files: list[Path] = [root / ".env", root / ".env.local"]
    slug = name.lower()
    ordered_files.extend([root / f".env.{slug}", root / f".env.{slug}.local"])

    loaded_files: list[str] = []
    file_values: dict[str, str] = {}
    for candidate in ordered_files:
        if not candidate.exists():
            continue
        loaded_files.append(str(candidate))
        for key, value in dotenv_values(candidate).items():
            if value is not None:
                file_values[key] = value

    return EnvironmentSettings(
        name=name,
        loaded_files=tuple(loaded_files),
        file_values=file_values,
    )


def _split_env_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_seconds(key: str, value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        seconds = float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number of seconds, got {value!r}") from None
    return seconds if seconds > 0 else None


def _parse_byte_count(key: str, value: str) -> int:
    if not value.strip():
        return DEFAULT_UPLOAD_MAX_BYTES
    try:
        count = int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer byte count, got {value!r}") from None
    if count <= 0:
        raise ValueError(f"{key} must be positive, got {count}")
    return count


def load_gateway_config(settings: EnvironmentSettings | None = None) -> GatewayConfig:
    """Build the gateway configuration from the environment.

    The three network addresses are read verbatim; a missing variable yields
    an empty string and only fails later, when the backend is dialed.
    Malformed numeric settings raise ``ValueError`` naming the variable.
    """

    if settings is None:
        settings = load_environment_settings()

    def _get(key: str, default: str = "") -> str:
        value = settings.get(key)
        return default if value is None else value

    return GatewayConfig(
        address=_get("GATEWAY_ADDRESS"),
        stakeholders_service_address=_get("STAKEHOLDERS_SERVICE_ADDRESS"),
        tours_service_address=_get("TOURS_SERVICE_ADDRESS"),
        upload_dir=_get("UPLOAD_DIR", "/app/uploads") or "/app/uploads",
        public_base_url=(_get("PUBLIC_BASE_URL", "http://localhost:8080") or "http://localhost:8080").rstrip("/"),
        upload_max_bytes=_parse_byte_count("UPLOAD_MAX_BYTES", _get("UPLOAD_MAX_BYTES")),
        upload_cleanup_on_rpc_failure=_parse_bool(settings.get("UPLOAD_CLEANUP_ON_RPC_FAILURE")),
        cors_allowed_origin=_get("CORS_ALLOWED_ORIGIN", "http://localhost:4200"),
        grpc_connect_timeout=_parse_seconds("GRPC_CONNECT_TIMEOUT", settings.get("GRPC_CONNECT_TIMEOUT")),
        grpc_call_timeout=_parse_seconds("GRPC_CALL_TIMEOUT", settings.get("GRPC_CALL_TIMEOUT")),
        definitions_dir=_get("SERVICE_DEFINITIONS_DIR") or str(DEFAULT_DEFINITIONS_DIR),
        log_level=(_get("LOG_LEVEL", "INFO") or "INFO").upper(),
        logger_name=_get("LOGGER_NAME", "tours.gateway") or "tours.gateway",
        log_aggregators=_split_env_list(_get("LOG_AGGREGATORS")),
        otel_endpoint=_get("OTEL_EXPORTER_OTLP_ENDPOINT"),
        environment=settings.name,
    )


def split_listen_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    ``:8080`` listens on every interface and ``[::1]:8080`` is accepted for
    IPv6 hosts. An empty address means every interface on port 80.
    """

    address = address.strip()
    if not address:
        return "0.0.0.0", 80
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", int(port)


def _sanitize_value(key: str, value: Any) -> Any:
    markers = ("SECRET", "PASSWORD", "TOKEN", "KEY")
    upper_key = key.upper()
    if any(marker in upper_key for marker in markers):
        return "***"
    return value


def log_configuration_snapshot(
    *,
    logger: Any,
    environment: str,
    config: Mapping[str, Any],
    keys_of_interest: Iterable[str],
) -> None:
    """Log a sanitized snapshot of the runtime configuration."""

    snapshot = {
        key: _sanitize_value(key, config.get(key))
        for key in keys_of_interest
        if key in config
    }
    logger.info(
        "Runtime configuration initialised",
        extra={
            "environment": environment,
            "config_snapshot": snapshot,
        },
    )
