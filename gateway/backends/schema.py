"""Declarative backend service definitions.

Each backend is described by a small YAML document listing its messages,
enums and RPC methods together with the HTTP binding of every method, in the
spirit of ``google.api.http`` annotations::

    package: tours
    service: ToursService
    messages:
      GetTourRequest:
        fields:
          - {name: id, number: 1, type: string}
    methods:
      GetTour:
        input: GetTourRequest
        output: Tour
        http: {method: GET, path: "/tours/{id}"}

The document is compiled into a ``FileDescriptorProto`` and registered in a
private descriptor pool, which yields real protobuf message classes that are
wire compatible with the backend as long as field numbers and types match.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

__all__ = [
    "HttpBinding",
    "MethodDefinition",
    "ServiceDefinition",
    "ServiceDefinitionError",
    "load_service_definition",
    "load_service_definitions",
]

_FieldProto = descriptor_pb2.FieldDescriptorProto

_SCALAR_TYPES: dict[str, int] = {
    "double": _FieldProto.TYPE_DOUBLE,
    "float": _FieldProto.TYPE_FLOAT,
    "int64": _FieldProto.TYPE_INT64,
    "uint64": _FieldProto.TYPE_UINT64,
    "int32": _FieldProto.TYPE_INT32,
    "uint32": _FieldProto.TYPE_UINT32,
    "sint32": _FieldProto.TYPE_SINT32,
    "sint64": _FieldProto.TYPE_SINT64,
    "fixed32": _FieldProto.TYPE_FIXED32,
    "fixed64": _FieldProto.TYPE_FIXED64,
    "bool": _FieldProto.TYPE_BOOL,
    "string": _FieldProto.TYPE_STRING,
    "bytes": _FieldProto.TYPE_BYTES,
}

_HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}
_PATH_VARIABLE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)(=\*\*|=\*)?\}")


class ServiceDefinitionError(ValueError):
    """Raised when a service definition cannot be loaded."""


@dataclass(frozen=True)
class HttpBinding:
    """HTTP route bound to one RPC method."""

    method: str
    path: str
    body: str | None = None

    @property
    def path_params(self) -> tuple[str, ...]:
        return tuple(match.group(1) for match in _PATH_VARIABLE.finditer(self.path))

    @property
    def flask_rule(self) -> str:
        """Return the path template as a Flask URL rule."""

        def _convert(match: re.Match[str]) -> str:
            if match.group(2) == "=**":
                return f"<path:{match.group(1)}>"
            return f"<{match.group(1)}>"

        return _PATH_VARIABLE.sub(_convert, self.path)


@dataclass(frozen=True)
class MethodDefinition:
    name: str
    full_path: str
    input_class: type[Message]
    output_class: type[Message]
    http: HttpBinding | None = None


@dataclass(frozen=True)
class ServiceDefinition:
    """Compiled definition of one backend gRPC service."""

    key: str
    full_name: str
    methods: Mapping[str, MethodDefinition]
    messages: Mapping[str, type[Message]] = field(default_factory=dict)

    def method(self, name: str) -> MethodDefinition:
        try:
            return self.methods[name]
        except KeyError:
            raise KeyError(f"{self.full_name} has no method {name!r}") from None

    def message_class(self, name: str) -> type[Message]:
        return self.messages[name]

    @property
    def http_methods(self) -> tuple[MethodDefinition, ...]:
        return tuple(method for method in self.methods.values() if method.http is not None)


def _to_json_name(name: str) -> str:
    parts = name.split("_")
    return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


def _read_document(source: str | Path | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(source, Mapping):
        return dict(source)

    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ServiceDefinitionError(f"Cannot read service definition {path}: {exc}") from exc

    try:
        if text.lstrip().startswith("{"):
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ServiceDefinitionError(f"Invalid service definition {path}") from exc

    if not isinstance(data, dict):
        raise ServiceDefinitionError(f"Service definition {path} must be a mapping")
    return data


def _add_field(
    message_proto: descriptor_pb2.DescriptorProto,
    field_doc: Mapping[str, Any],
    *,
    package: str,
    messages: Iterable[str],
    enums: Iterable[str],
) -> None:
    try:
        name = str(field_doc["name"])
        number = int(field_doc["number"])
        type_name = str(field_doc["type"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ServiceDefinitionError(
            f"Field of {message_proto.name} needs name, number and type"
        ) from exc

    field_proto = message_proto.field.add(
        name=name,
        number=number,
        json_name=str(field_doc.get("json_name") or _to_json_name(name)),
        label=_FieldProto.LABEL_REPEATED if field_doc.get("repeated") else _FieldProto.LABEL_OPTIONAL,
    )
    if type_name in _SCALAR_TYPES:
        field_proto.type = _SCALAR_TYPES[type_name]
    elif type_name in enums:
        field_proto.type = _FieldProto.TYPE_ENUM
        field_proto.type_name = f".{package}.{type_name}"
    elif type_name in messages:
        field_proto.type = _FieldProto.TYPE_MESSAGE
        field_proto.type_name = f".{package}.{type_name}"
    else:
        raise ServiceDefinitionError(
            f"Unknown type {type_name!r} for {message_proto.name}.{name}"
        )


def _build_file_proto(key: str, document: Mapping[str, Any]) -> descriptor_pb2.FileDescriptorProto:
    package = str(document.get("package") or "")
    service_name = str(document.get("service") or "")
    if not package or not service_name:
        raise ServiceDefinitionError(f"Service definition {key!r} needs package and service")

    enums: Mapping[str, Any] = document.get("enums") or {}
    messages: Mapping[str, Any] = document.get("messages") or {}
    methods: Mapping[str, Any] = document.get("methods") or {}

    file_proto = descriptor_pb2.FileDescriptorProto(
        name=f"{package}/{key}.proto",
        package=package,
        syntax="proto3",
    )

    for enum_name, values in enums.items():
        enum_proto = file_proto.enum_type.add(name=enum_name)
        # proto3 enums must start at zero
        for number, value in enumerate(values or ()):
            enum_proto.value.add(name=str(value), number=number)

    for message_name, body in messages.items():
        message_proto = file_proto.message_type.add(name=message_name)
        for field_doc in (body or {}).get("fields") or ():
            _add_field(message_proto, field_doc, package=package, messages=messages, enums=enums)

    service_proto = file_proto.service.add(name=service_name)
    for method_name, body in methods.items():
        body = body or {}
        for side in ("input", "output"):
            if body.get(side) not in messages:
                raise ServiceDefinitionError(
                    f"{service_name}.{method_name} {side} {body.get(side)!r} is not a declared message"
                )
        service_proto.method.add(
            name=method_name,
            input_type=f".{package}.{body['input']}",
            output_type=f".{package}.{body['output']}",
        )

    return file_proto


def _parse_binding(method: str, raw: Any, input_descriptor) -> HttpBinding | None:
    if not raw:
        return None
    if not isinstance(raw, Mapping):
        raise ServiceDefinitionError(f"http binding of {method} must be a mapping")

    http_method = str(raw.get("method", "")).upper()
    path = str(raw.get("path", ""))
    if http_method not in _HTTP_METHODS:
        raise ServiceDefinitionError(f"Unsupported HTTP method {http_method!r} for {method}")
    if not path.startswith("/"):
        raise ServiceDefinitionError(f"HTTP path of {method} must start with '/'")

    body = raw.get("body")
    binding = HttpBinding(method=http_method, path=path, body=str(body) if body else None)

    fields = input_descriptor.fields_by_name
    for param in binding.path_params:
        if param not in fields:
            raise ServiceDefinitionError(f"Path parameter {param!r} is not a field of {input_descriptor.name}")
    if binding.body not in (None, "*"):
        body_field = fields.get(binding.body)
        if body_field is None or body_field.message_type is None:
            raise ServiceDefinitionError(
                f"Body field {binding.body!r} of {method} must be a message field of {input_descriptor.name}"
            )
    return binding


def load_service_definition(
    source: str | Path | Mapping[str, Any], *, key: str | None = None
) -> ServiceDefinition:
    """Compile one service definition document.

    Args:
        source: A mapping or the path of a YAML/JSON document.
        key: Registry key of the backend; defaults to the file stem.
    """

    document = _read_document(source)
    if key is None:
        key = str(document.get("name") or (Path(source).stem if not isinstance(source, Mapping) else ""))
    if not key:
        raise ServiceDefinitionError("Service definition needs a name")

    file_proto = _build_file_proto(key, document)
    pool = descriptor_pool.DescriptorPool()
    try:
        pool.AddSerializedFile(file_proto.SerializeToString())
    except (KeyError, TypeError, ValueError) as exc:
        raise ServiceDefinitionError(f"Invalid service definition {key!r}: {exc}") from exc

    package = file_proto.package
    messages = {
        message_proto.name: message_factory.GetMessageClass(
            pool.FindMessageTypeByName(f"{package}.{message_proto.name}")
        )
        for message_proto in file_proto.message_type
    }

    service = pool.FindServiceByName(f"{package}.{file_proto.service[0].name}")
    raw_methods: Mapping[str, Any] = document.get("methods") or {}
    methods: dict[str, MethodDefinition] = {}
    for method_descriptor in service.methods:
        input_class = messages[method_descriptor.input_type.name]
        http = _parse_binding(
            method_descriptor.name,
            (raw_methods.get(method_descriptor.name) or {}).get("http"),
            method_descriptor.input_type,
        )
        methods[method_descriptor.name] = MethodDefinition(
            name=method_descriptor.name,
            full_path=f"/{service.full_name}/{method_descriptor.name}",
            input_class=input_class,
            output_class=messages[method_descriptor.output_type.name],
            http=http,
        )

    return ServiceDefinition(key=key, full_name=service.full_name, methods=methods, messages=messages)


def load_service_definitions(directory: str | Path) -> dict[str, ServiceDefinition]:
    """Load every ``*.yaml``/``*.yml``/``*.json`` definition in ``directory``."""

    root = Path(directory)
    if not root.is_dir():
        raise ServiceDefinitionError(f"Service definitions directory {root} does not exist")

    definitions: dict[str, ServiceDefinition] = {}
    for path in sorted(root.iterdir()):
        if path.suffix.lower() not in {".yaml", ".yml", ".json"}:
            continue
        definition = load_service_definition(path)
        if definition.key in definitions:
            raise ServiceDefinitionError(f"Duplicate service definition {definition.key!r}")
        definitions[definition.key] = definition
    return definitions
