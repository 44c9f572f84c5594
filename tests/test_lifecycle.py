import http.client
import threading

from gateway.main import run, start_server, stop_server
from gateway.utils.lifecycle import ShutdownRegistry, ShutdownSignal


def test_shutdown_registry_runs_once_in_order():
    calls = []
    registry = ShutdownRegistry()
    registry.add("first", lambda: calls.append("first"))
    registry.add("second", lambda: calls.append("second"))

    assert registry.fire() == []
    assert registry.fire() == []
    assert calls == ["first", "second"]


def test_shutdown_registry_collects_failures():
    calls = []
    registry = ShutdownRegistry()

    def _boom():
        raise RuntimeError("socket already closed")

    registry.add("server", _boom)
    registry.add("channels", lambda: calls.append("channels"))

    failures = registry.fire()

    assert [name for name, _ in failures] == ["server"]
    assert calls == ["channels"]


def test_shutdown_signal_releases_waiter():
    shutdown = ShutdownSignal()
    released = threading.Event()

    def _waiter():
        shutdown.wait()
        released.set()

    thread = threading.Thread(target=_waiter)
    thread.start()
    shutdown.trigger("SIGTERM")
    thread.join(timeout=2)

    assert released.is_set()
    assert shutdown.received == "SIGTERM"


def test_server_serves_in_background_and_releases_port(app):
    server, thread = start_server(app, "127.0.0.1:0")
    port = server.server_port
    try:
        connection = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
        connection.request("OPTIONS", "/anything")
        response = connection.getresponse()
        assert response.status == 200
        assert response.getheader("Access-Control-Allow-Origin") == "http://localhost:4200"
        connection.close()
    finally:
        stop_server(server)
    thread.join(timeout=5)

    assert not thread.is_alive()


def test_run_fails_fast_when_backend_address_missing(make_config):
    shutdown = ShutdownSignal()
    config = make_config(stakeholders_service_address="", tours_service_address="")

    assert run(config, shutdown=shutdown) == 1


def test_run_reports_invalid_configuration(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "ten megabytes")

    assert run(shutdown=ShutdownSignal()) == 1
