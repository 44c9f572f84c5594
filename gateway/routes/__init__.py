"""Route registration helpers for the gateway."""

from __future__ import annotations

from typing import Mapping

from flask import Flask

from ..backends import BackendRegistry, ServiceDefinition
from ..services.keypoints import KeyPointService
from ..transcoding import build_transcoding_blueprint
from .uploads import create_uploads_blueprint

__all__ = ["register_gateway_routes"]


def register_gateway_routes(
    app: Flask,
    *,
    definitions: Mapping[str, ServiceDefinition],
    backends: BackendRegistry,
    keypoints: KeyPointService,
) -> None:
    """Register the hand-written routes first, then the transcoded ones.

    Werkzeug prefers static path segments, so ``/tours/add-keypoint`` keeps
    precedence over templated backend routes such as ``/tours/{id}``.
    """

    app.register_blueprint(create_uploads_blueprint(keypoints))
    app.register_blueprint(build_transcoding_blueprint(definitions, backends))
