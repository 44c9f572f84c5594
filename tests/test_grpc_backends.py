"""Tests running the gateway against an in-process gRPC server."""

from __future__ import annotations

import io
import socket
from concurrent import futures

import grpc
import pytest

from gateway.app import create_app
from gateway.backends import (
    BackendClient,
    BackendConnectionError,
    connect_backends,
    dial,
)


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def tours_server(definitions):
    tours = definitions["tours"]
    received = []

    def add_key_point(request, context):
        received.append(request)
        if request.tour_id == "missing":
            context.abort(grpc.StatusCode.NOT_FOUND, "tour missing not found")
        response = tours.method("AddKeyPoint").output_class()
        response.tour.id = request.tour_id
        response.tour.key_points.add().CopyFrom(request.point)
        return response

    def get_tour(request, context):
        response = tours.method("GetTour").output_class()
        response.tour.id = request.id
        response.tour.name = "Danube walk"
        return response

    handlers = {
        "AddKeyPoint": grpc.unary_unary_rpc_method_handler(
            add_key_point,
            request_deserializer=tours.method("AddKeyPoint").input_class.FromString,
            response_serializer=tours.method("AddKeyPoint").output_class.SerializeToString,
        ),
        "GetTour": grpc.unary_unary_rpc_method_handler(
            get_tour,
            request_deserializer=tours.method("GetTour").input_class.FromString,
            response_serializer=tours.method("GetTour").output_class.SerializeToString,
        ),
    }
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=4))
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(tours.full_name, handlers),))
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    try:
        yield f"127.0.0.1:{port}", received
    finally:
        server.stop(None)


def test_dial_and_invoke(tours_server, definitions):
    address, _ = tours_server
    channel = dial(address, timeout=5)
    client = BackendClient("tours", channel, definitions["tours"], call_timeout=5)
    try:
        request = definitions["tours"].method("GetTour").input_class(id="t-1")
        response = client.invoke("GetTour", request)
        assert response.tour.name == "Danube walk"
        assert client.is_ready(timeout=1)
    finally:
        client.close()


def test_unimplemented_method_raises_rpc_error(tours_server, definitions):
    address, _ = tours_server
    client = BackendClient("tours", dial(address, timeout=5), definitions["tours"])
    try:
        request = definitions["tours"].method("GetToursByAuthor").input_class(author_id="a")
        with pytest.raises(grpc.RpcError) as excinfo:
            client.invoke("GetToursByAuthor", request)
        assert excinfo.value.code() == grpc.StatusCode.UNIMPLEMENTED
    finally:
        client.close()


def test_dial_empty_address_fails():
    with pytest.raises(BackendConnectionError):
        dial("")


def test_dial_times_out_when_nothing_listens():
    with pytest.raises(BackendConnectionError):
        dial(f"127.0.0.1:{_free_port()}", timeout=0.3)


def test_connect_backends_is_all_or_nothing(tours_server, definitions):
    address, _ = tours_server
    with pytest.raises(BackendConnectionError) as excinfo:
        connect_backends(
            {"tours": address, "stakeholders": ""},
            definitions,
            connect_timeout=5,
        )
    assert "stakeholders" in str(excinfo.value)


def test_upload_reaches_real_backend(tours_server, definitions, make_config, upload_dir):
    address, received = tours_server
    backends = connect_backends(
        {"tours": address, "stakeholders": address},
        definitions,
        connect_timeout=5,
        call_timeout=5,
    )
    try:
        app = create_app(make_config(), backends=backends, definitions=definitions)
        client = app.test_client()

        response = client.post(
            "/tours/add-keypoint",
            data={
                "tourId": "42",
                "name": "Waterfall",
                "description": "Nice view",
                "latitude": "45.5",
                "longitude": "13.7",
                "file": (io.BytesIO(b"0123456789"), "photo.jpg"),
            },
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        stored = next(upload_dir.iterdir())
        assert received[0].point.imageURL == f"http://localhost:8080/uploads/{stored.name}"
        assert response.get_json()["tour"]["key_points"][0]["imageURL"] == received[0].point.imageURL

        transcoded = client.get("/tours/t-3")
        assert transcoded.status_code == 200
        tour = transcoded.get_json()["tour"]
        assert (tour["id"], tour["name"]) == ("t-3", "Danube walk")
        assert tour["keyPoints"] == [] and tour["status"] == "DRAFT"

        failed = client.post(
            "/tours/add-keypoint",
            data={
                "tourId": "missing",
                "latitude": "1",
                "longitude": "2",
                "file": (io.BytesIO(b"x"), "a.png"),
            },
            content_type="multipart/form-data",
        )
        assert failed.status_code == 500
        assert "NOT_FOUND" in failed.get_data(as_text=True)
        assert len(list(upload_dir.iterdir())) == 2
    finally:
        backends.close()
