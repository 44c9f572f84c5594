import pytest

EXPECTED_HEADERS = {
    "Access-Control-Allow-Origin": "http://localhost:4200",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS, PATCH",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


@pytest.mark.parametrize(
    "path",
    ["/tours/add-keypoint", "/tours/42", "/no/such/route", "/uploads/missing.png"],
)
def test_preflight_short_circuits(client, tours, path):
    response = client.options(path, headers={"Origin": "http://localhost:4200"})

    assert response.status_code == 200
    assert response.data == b""
    for header, value in EXPECTED_HEADERS.items():
        assert response.headers[header] == value
    assert tours.calls == []


def test_headers_on_regular_and_error_responses(client):
    ok = client.get("/tours/7")
    missing = client.get("/no/such/route")

    assert ok.status_code == 200
    assert missing.status_code == 404
    for response in (ok, missing):
        for header, value in EXPECTED_HEADERS.items():
            assert response.headers[header] == value


def test_configured_origin(make_config, definitions, tours, stakeholders):
    from gateway.app import create_app
    from gateway.backends import BackendRegistry

    app = create_app(
        make_config(cors_allowed_origin="https://tours.example"),
        backends=BackendRegistry({"tours": tours, "stakeholders": stakeholders}),
        definitions=definitions,
    )

    response = app.test_client().options("/anything")

    assert response.headers["Access-Control-Allow-Origin"] == "https://tours.example"
