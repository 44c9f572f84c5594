"""gRPC backends reachable from the gateway."""

from .connector import (  # noqa: F401
    BackendClient,
    BackendConnectionError,
    BackendRegistry,
    connect_backends,
    dial,
)
from .schema import (  # noqa: F401
    HttpBinding,
    MethodDefinition,
    ServiceDefinition,
    ServiceDefinitionError,
    load_service_definition,
    load_service_definitions,
)

__all__ = [
    "BackendClient",
    "BackendConnectionError",
    "BackendRegistry",
    "HttpBinding",
    "MethodDefinition",
    "ServiceDefinition",
    "ServiceDefinitionError",
    "connect_backends",
    "dial",
    "load_service_definition",
    "load_service_definitions",
]
