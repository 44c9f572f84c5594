from __future__ import annotations

import pytest

from gateway.backends import HttpBinding, ServiceDefinitionError, load_service_definition


def _document(**overrides):
    document = {
        "package": "demo",
        "service": "DemoService",
        "messages": {
            "Item": {"fields": [{"name": "item_id", "number": 1, "type": "string"}]},
            "Items": {"fields": [{"name": "items", "number": 1, "type": "Item", "repeated": True}]},
        },
        "methods": {
            "GetItem": {
                "input": "Item",
                "output": "Item",
                "http": {"method": "get", "path": "/items/{item_id}"},
            },
            "Internal": {"input": "Item", "output": "Items"},
        },
    }
    document.update(overrides)
    return document


def test_bundled_definitions(definitions):
    assert set(definitions) == {"stakeholders", "tours"}
    tours = definitions["tours"]
    assert tours.full_name == "tours.ToursService"

    add_key_point = tours.method("AddKeyPoint")
    assert add_key_point.full_path == "/tours.ToursService/AddKeyPoint"
    assert add_key_point.http == HttpBinding(method="POST", path="/tours/{tour_id}/keypoints", body="point")

    fields = tours.message_class("KeyPoint").DESCRIPTOR.fields_by_name
    assert fields["imageURL"].json_name == "imageURL"
    assert fields["latitude"].number == 4


def test_messages_round_trip_on_the_wire(definitions):
    stakeholders = definitions["stakeholders"]
    request_class = stakeholders.method("Login").input_class
    encoded = request_class(username="ana", password="pw").SerializeToString()

    decoded = request_class.FromString(encoded)

    assert decoded.username == "ana"
    assert decoded.password == "pw"


def test_mapping_source_and_unbound_methods():
    definition = load_service_definition(_document(), key="demo")

    assert definition.method("GetItem").http.method == "GET"
    assert definition.method("Internal").http is None
    assert [method.name for method in definition.http_methods] == ["GetItem"]
    with pytest.raises(KeyError):
        definition.method("Missing")


def test_loads_yaml_file(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "package: catalog\n"
        "service: CatalogService\n"
        "messages:\n"
        "  Empty: {}\n"
        "methods:\n"
        "  Ping: {input: Empty, output: Empty, http: {method: GET, path: /ping}}\n",
        encoding="utf-8",
    )

    definition = load_service_definition(path)

    assert definition.key == "catalog"
    assert definition.method("Ping").full_path == "/catalog.CatalogService/Ping"


@pytest.mark.parametrize(
    "path, rule, params",
    [
        ("/tours/{id}", "/tours/<id>", ("id",)),
        ("/files/{name=**}", "/files/<path:name>", ("name",)),
        ("/a/{x}/b/{y=*}", "/a/<x>/b/<y>", ("x", "y")),
        ("/static", "/static", ()),
    ],
)
def test_flask_rule_conversion(path, rule, params):
    binding = HttpBinding(method="GET", path=path)
    assert binding.flask_rule == rule
    assert binding.path_params == params


@pytest.mark.parametrize(
    "overrides",
    [
        {"package": ""},
        {"messages": {"Item": {"fields": [{"name": "x", "number": 1, "type": "Nope"}]}}},
        {"messages": {"Item": {"fields": [{"name": "x", "type": "string"}]}}},
        {"methods": {"GetItem": {"input": "Item", "output": "Missing"}}},
        {"methods": {"GetItem": {"input": "Item", "output": "Item", "http": {"method": "TRACE", "path": "/x"}}}},
        {"methods": {"GetItem": {"input": "Item", "output": "Item", "http": {"method": "GET", "path": "/x/{nope}"}}}},
        {"methods": {"GetItem": {"input": "Item", "output": "Item", "http": {"method": "POST", "path": "/x", "body": "item_id"}}}},
    ],
)
def test_invalid_definitions(overrides):
    with pytest.raises(ServiceDefinitionError):
        load_service_definition(_document(**overrides), key="demo")


def test_unreadable_file(tmp_path):
    with pytest.raises(ServiceDefinitionError):
        load_service_definition(tmp_path / "missing.yaml")
