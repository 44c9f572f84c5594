"""HTTP/JSON to gRPC transcoding routes."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping

import grpc
from flask import Blueprint, current_app, jsonify, request
from google.protobuf import json_format
from google.protobuf.descriptor import FieldDescriptor

from ..backends import BackendRegistry, HttpBinding, MethodDefinition, ServiceDefinition
from .invoke import call_backend
from .status import rpc_status, status_response

__all__ = ["TranscodingError", "build_request_payload", "build_transcoding_blueprint"]


class TranscodingError(ValueError):
    """Raised when an HTTP request cannot be mapped onto an RPC request."""


def _decode_body() -> Any:
    raw = request.get_data(cache=True)
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TranscodingError(f"invalid JSON body: {exc}") from exc


def _query_payload(method: MethodDefinition) -> Dict[str, Any]:
    descriptor = method.input_class.DESCRIPTOR
    fields: Dict[str, FieldDescriptor] = {}
    for field in descriptor.fields:
        fields[field.name] = field
        fields[field.json_name] = field

    payload: Dict[str, Any] = {}
    for key, values in request.args.lists():
        field = fields.get(key)
        if field is None:
            continue
        if field.label == FieldDescriptor.LABEL_REPEATED:
            payload[field.name] = list(values)
        else:
            payload[field.name] = values[-1]
    return payload


def build_request_payload(
    method: MethodDefinition, path_params: Mapping[str, str]
) -> Dict[str, Any]:
    """Assemble the JSON form of the RPC request for the current request.

    Body mapping follows ``google.api.http``: ``*`` maps the whole body onto
    the request, a field name maps it onto that field, and without a body the
    query string fills the request. Path parameters always win.
    """

    binding: HttpBinding = method.http  # type: ignore[assignment]
    if binding.body is None:
        payload = _query_payload(method)
    else:
        body = _decode_body()
        if not isinstance(body, dict):
            raise TranscodingError("request body must be a JSON object")
        payload = dict(body) if binding.body == "*" else {binding.body: body}

    payload.update(path_params)
    return payload


def _make_view(
    backend_name: str, method: MethodDefinition, backends: BackendRegistry
) -> Callable[..., Any]:
    def view(**path_params: str):
        try:
            payload = build_request_payload(method, path_params)
            rpc_request = json_format.ParseDict(
                payload, method.input_class(), ignore_unknown_fields=True
            )
        except (TranscodingError, json_format.ParseError) as exc:
            return status_response(grpc.StatusCode.INVALID_ARGUMENT, str(exc))

        try:
            response = call_backend(
                backends.get(backend_name),
                method.name,
                rpc_request,
                metrics=current_app.extensions.get("metrics"),
            )
        except grpc.RpcError as exc:
            code, details = rpc_status(exc)
            current_app.logger.warning(
                "Backend call failed",
                extra={"backend": backend_name, "rpc": method.full_path, "grpc_code": code.name},
            )
            return status_response(code, details)

        # Fields left at their default value are still written out.
        return jsonify(
            json_format.MessageToDict(response, always_print_fields_with_no_presence=True)
        )

    view.__name__ = f"{backend_name}_{method.name}"
    return view


def build_transcoding_blueprint(
    definitions: Mapping[str, ServiceDefinition], backends: BackendRegistry
) -> Blueprint:
    """Register one route per HTTP-bound method of every backend."""

    blueprint = Blueprint("transcoding", __name__)
    for backend_name, definition in definitions.items():
        for method in definition.http_methods:
            binding: HttpBinding = method.http  # type: ignore[assignment]
            blueprint.add_url_rule(
                binding.flask_rule,
                endpoint=f"{backend_name}_{method.name}",
                view_func=_make_view(backend_name, method, backends),
                methods=[binding.method],
            )
    return blueprint
