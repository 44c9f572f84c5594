"""Multipart keypoint upload and static serving of stored images."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import quote

from flask import Blueprint, Response, abort, current_app, jsonify, redirect, request, send_from_directory
from google.protobuf import json_format
from markupsafe import escape
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.security import safe_join

from ..services.keypoints import KeyPointService, UploadError, UploadRejected
from ..utils.responses import text_error_response

__all__ = ["create_uploads_blueprint", "render_directory_listing"]


def render_directory_listing(directory: Path) -> Response:
    """Render ``directory`` as a bare ``<pre>`` list of links, sorted by name."""

    lines = ["<!doctype html>", '<meta name="viewport" content="width=device-width">', "<pre>"]
    for entry in sorted(directory.iterdir(), key=lambda item: item.name):
        name = f"{entry.name}/" if entry.is_dir() else entry.name
        lines.append(f'<a href="{quote(name)}">{escape(name)}</a>')
    lines.append("</pre>")
    return current_app.response_class("\n".join(lines) + "\n", mimetype="text/html")


def create_uploads_blueprint(service: KeyPointService) -> Blueprint:
    """Expose ``POST /tours/add-keypoint`` and the ``/uploads/`` file tree."""

    blueprint = Blueprint("uploads", __name__)

    def _fail(error: UploadError):
        metrics = current_app.extensions.get("metrics")
        if metrics:
            metrics.record_upload("rejected" if isinstance(error, UploadRejected) else "failed")
        log = current_app.logger.warning if error.status_code < 500 else current_app.logger.error
        log("Keypoint upload failed: %s", error.message, extra={"status": error.status_code})
        return text_error_response(error.status_code, error.message)

    @blueprint.post("/tours/add-keypoint")
    def add_key_point():
        # Only this route is size limited; transcoded JSON bodies are not.
        request.max_content_length = current_app.config["UPLOAD_MAX_BYTES"]
        try:
            form = request.form
            files = request.files
        except RequestEntityTooLarge as exc:
            return _fail(UploadRejected(f"error parsing form: {exc.description}"))

        upload = files.get("file")
        if upload is None:
            return _fail(UploadRejected("error retrieving file: no file part named 'file'"))

        current_app.logger.info(
            "Received keypoint image",
            extra={"upload_name": upload.filename, "content_length": request.content_length},
        )
        try:
            response = service.add_key_point(form, upload.stream, upload.filename or "")
        except UploadError as exc:
            return _fail(exc)

        metrics = current_app.extensions.get("metrics")
        if metrics:
            metrics.record_upload("stored")
        return jsonify(
            json_format.MessageToDict(
                response, preserving_proto_field_name=True, use_integers_for_enums=True
            )
        )

    @blueprint.get("/uploads/", defaults={"filename": ""})
    @blueprint.get("/uploads/<path:filename>")
    def serve_upload(filename: str):
        target = safe_join(str(service.upload_dir), filename) if filename else str(service.upload_dir)
        if target is None:
            abort(404)
        path = Path(target)
        if path.is_dir():
            if filename and not filename.endswith("/"):
                return redirect(f"{request.path}/", code=301)
            return render_directory_listing(path)
        if not filename:
            abort(404)
        return send_from_directory(service.upload_dir, filename)

    return blueprint
