"""Outbound gRPC connections to the backend services."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterator, Mapping

import grpc
from google.protobuf.message import Message

from .schema import ServiceDefinition

__all__ = [
    "BackendClient",
    "BackendConnectionError",
    "BackendRegistry",
    "connect_backends",
    "dial",
]

logger = logging.getLogger(__name__)


class BackendConnectionError(RuntimeError):
    """Raised when a backend channel cannot be established."""


def dial(address: str, *, timeout: float | None = None) -> grpc.Channel:
    """Open an insecure channel and block until it is ready.

    With ``timeout`` left as ``None`` the call waits for as long as it takes
    the backend to accept the connection.
    """

    if not address:
        raise BackendConnectionError("Backend address is empty")

    channel = grpc.insecure_channel(address)
    try:
        grpc.channel_ready_future(channel).result(timeout=timeout)
    except grpc.FutureTimeoutError as exc:
        channel.close()
        raise BackendConnectionError(
            f"Timed out after {timeout}s connecting to {address}"
        ) from exc
    return channel


class BackendClient:
    """Invoke unary RPCs of one backend service over a shared channel.

    grpcio channels multiplex concurrent calls, so a single client is shared
    by every request thread.
    """

    def __init__(
        self,
        name: str,
        channel: grpc.Channel,
        service: ServiceDefinition,
        *,
        call_timeout: float | None = None,
    ) -> None:
        self.name = name
        self.channel = channel
        self.service = service
        self.call_timeout = call_timeout
        self._callables: Dict[str, grpc.UnaryUnaryMultiCallable] = {}
        self._lock = threading.Lock()

    def _callable(self, method_name: str) -> grpc.UnaryUnaryMultiCallable:
        with self._lock:
            stub = self._callables.get(method_name)
            if stub is None:
                method = self.service.method(method_name)
                stub = self.channel.unary_unary(
                    method.full_path,
                    request_serializer=method.input_class.SerializeToString,
                    response_deserializer=method.output_class.FromString,
                )
                self._callables[method_name] = stub
            return stub

    def invoke(self, method_name: str, request: Message) -> Message:
        """Call ``method_name`` and return the decoded response.

        ``grpc.RpcError`` propagates to the caller untouched.
        """

        return self._callable(method_name)(request, timeout=self.call_timeout)

    def is_ready(self, timeout: float = 1.0) -> bool:
        try:
            grpc.channel_ready_future(self.channel).result(timeout=timeout)
        except grpc.FutureTimeoutError:
            return False
        return True

    def close(self) -> None:
        self.channel.close()


class BackendRegistry:
    """Named backend clients created once at startup."""

    def __init__(self, clients: Mapping[str, BackendClient] | None = None) -> None:
        self._clients: Dict[str, BackendClient] = dict(clients or {})

    def register(self, client: BackendClient) -> None:
        self._clients[client.name] = client

    def get(self, name: str) -> BackendClient:
        try:
            return self._clients[name]
        except KeyError:
            raise KeyError(f"Backend {name!r} is not configured") from None

    def __contains__(self, name: object) -> bool:
        return name in self._clients

    def __iter__(self) -> Iterator[BackendClient]:
        return iter(list(self._clients.values()))

    def close(self) -> None:
        for client in self:
            try:
                client.close()
            except Exception:  # pragma: no cover - best effort on shutdown
                logger.exception("Failed to close backend channel %s", client.name)


def connect_backends(
    addresses: Mapping[str, str],
    definitions: Mapping[str, ServiceDefinition],
    *,
    connect_timeout: float | None = None,
    call_timeout: float | None = None,
) -> BackendRegistry:
    """Dial every backend in ``addresses`` eagerly.

    The first failure closes the channels opened so far and raises
    ``BackendConnectionError``.
    """

    registry = BackendRegistry()
    for name, address in addresses.items():
        definition = definitions.get(name)
        if definition is None:
            registry.close()
            raise BackendConnectionError(f"No service definition for backend {name!r}")
        logger.info("Dialing %s backend at %s", name, address or "<unset>")
        try:
            channel = dial(address, timeout=connect_timeout)
        except BackendConnectionError as exc:
            registry.close()
            raise BackendConnectionError(f"Failed to dial {name} backend: {exc}") from exc
        registry.register(
            BackendClient(name, channel, definition, call_timeout=call_timeout)
        )
        logger.info("Connected to %s backend", name)
    return registry
