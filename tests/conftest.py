import os
import sys
from typing import Any, Callable, Dict, List, Tuple

import grpc
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from gateway.app import create_app  # noqa: E402
from gateway.backends import BackendRegistry, load_service_definitions  # noqa: E402
from gateway.utils.config import DEFAULT_DEFINITIONS_DIR, GatewayConfig  # noqa: E402


class FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


class FakeBackendClient:
    """Stands in for ``BackendClient`` and records every call."""

    def __init__(self, name: str, service) -> None:
        self.name = name
        self.service = service
        self.calls: List[Tuple[str, Any]] = []
        self.handlers: Dict[str, Callable[[Any], Any]] = {}
        self.ready = True
        self.closed = False

    def respond(self, method_name: str, handler: Callable[[Any], Any]) -> None:
        self.handlers[method_name] = handler

    def fail(self, method_name: str, code: grpc.StatusCode, details: str) -> None:
        def _raise(_request):
            raise FakeRpcError(code, details)

        self.handlers[method_name] = _raise

    def invoke(self, method_name: str, request):
        self.calls.append((method_name, request))
        handler = self.handlers.get(method_name)
        if handler is None:
            return self.service.method(method_name).output_class()
        return handler(request)

    def is_ready(self, timeout: float = 1.0) -> bool:
        return self.ready

    def close(self) -> None:
        self.closed = True


@pytest.fixture(scope="session")
def definitions():
    return load_service_definitions(DEFAULT_DEFINITIONS_DIR)


@pytest.fixture
def tours(definitions):
    return FakeBackendClient("tours", definitions["tours"])


@pytest.fixture
def stakeholders(definitions):
    return FakeBackendClient("stakeholders", definitions["stakeholders"])


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def make_config(upload_dir):
    def _make(**overrides) -> GatewayConfig:
        values = {
            "address": "127.0.0.1:0",
            "stakeholders_service_address": "stakeholders:9090",
            "tours_service_address": "tours:9090",
            "upload_dir": str(upload_dir),
            "log_level": "WARNING",
        }
        values.update(overrides)
        return GatewayConfig(**values)

    return _make


@pytest.fixture
def app(make_config, definitions, tours, stakeholders):
    backends = BackendRegistry({"tours": tours, "stakeholders": stakeholders})
    app = create_app(make_config(), backends=backends, definitions=definitions)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
