"""Keypoint image uploads bridged into the tours backend."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Mapping

import grpc
from google.protobuf.message import Message

from ..backends import BackendClient
from ..observability import MetricsRegistry
from ..transcoding import call_backend, rpc_status

__all__ = [
    "KeyPointService",
    "StoredFile",
    "UploadError",
    "UploadFailed",
    "UploadRejected",
    "file_extension",
    "parse_coordinate",
]

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 64 * 1024


class UploadError(Exception):
    """Base error for keypoint uploads, carrying the HTTP status to return."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UploadRejected(UploadError):
    """The client sent something unusable."""

    status_code = 400


class UploadFailed(UploadError):
    """The gateway or the tours backend failed to process the upload."""

    status_code = 500


@dataclass(frozen=True)
class StoredFile:
    filename: str
    path: Path
    size: int


def file_extension(filename: str) -> str:
    """Return the extension of the last path element, dot included."""

    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    index = base.rfind(".")
    return base[index:] if index >= 0 else ""


def parse_coordinate(name: str, raw: str | None) -> float:
    """Parse a latitude/longitude form value.

    Only parseability is checked; no range validation is applied.
    """

    value = raw or ""
    # float() tolerates padding and digit separators, the form contract does not
    if value != value.strip() or "_" in value:
        raise UploadRejected(f"invalid {name}: {value!r} is not a number")
    try:
        return float(value)
    except ValueError as exc:
        raise UploadRejected(f"invalid {name}: {exc}") from exc


class KeyPointService:
    """Store uploaded keypoint images and register them with the tours backend."""

    def __init__(
        self,
        *,
        upload_dir: str | Path,
        public_base_url: str,
        tours: BackendClient,
        cleanup_on_rpc_failure: bool = False,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.upload_dir = Path(upload_dir).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        self.tours = tours
        self.cleanup_on_rpc_failure = cleanup_on_rpc_failure
        self.metrics = metrics

    def image_url(self, filename: str) -> str:
        return f"{self.public_base_url}/uploads/{filename}"

    def store(self, stream: IO[bytes], original_filename: str) -> StoredFile:
        """Write ``stream`` under a fresh ``<uuid><ext>`` name."""

        filename = f"{uuid.uuid4()}{file_extension(original_filename)}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UploadFailed(f"error creating upload directory: {exc}") from exc

        path = self.upload_dir / filename
        try:
            target = path.open("wb")
        except (OSError, ValueError) as exc:
            raise UploadFailed(f"error creating file: {exc}") from exc

        size = 0
        with target:
            try:
                while True:
                    chunk = stream.read(_COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    target.write(chunk)
                    size += len(chunk)
            except OSError as exc:
                raise UploadFailed(f"error copying file: {exc}") from exc

        logger.info("Stored keypoint image", extra={"stored_as": filename, "bytes": size})
        if size == 0:
            logger.warning("Uploaded file is empty", extra={"stored_as": filename})
        return StoredFile(filename=filename, path=path, size=size)

    def build_request(
        self,
        *,
        tour_id: str,
        name: str,
        description: str,
        latitude: float,
        longitude: float,
        image_url: str,
    ) -> Message:
        service = self.tours.service
        request_class = service.method("AddKeyPoint").input_class
        key_point_class = service.message_class("KeyPoint")
        return request_class(
            tour_id=tour_id,
            point=key_point_class(
                name=name,
                description=description,
                latitude=latitude,
                longitude=longitude,
                imageURL=image_url,
            ),
        )

    def add_key_point(self, form: Mapping[str, str], stream: IO[bytes], original_filename: str) -> Message:
        """Store the image, then forward the keypoint to ``AddKeyPoint``.

        Coordinates are parsed after the file is written; a rejected
        coordinate or failed call leaves the file in place unless cleanup is
        enabled for RPC failures.
        """

        stored = self.store(stream, original_filename)
        latitude = parse_coordinate("latitude", form.get("latitude"))
        longitude = parse_coordinate("longitude", form.get("longitude"))

        rpc_request = self.build_request(
            tour_id=form.get("tourId", ""),
            name=form.get("name", ""),
            description=form.get("description", ""),
            latitude=latitude,
            longitude=longitude,
            image_url=self.image_url(stored.filename),
        )

        try:
            return call_backend(self.tours, "AddKeyPoint", rpc_request, metrics=self.metrics)
        except grpc.RpcError as exc:
            code, details = rpc_status(exc)
            self._handle_orphan(stored)
            raise UploadFailed(f"gRPC call failed: {code.name}: {details}") from exc

    def _handle_orphan(self, stored: StoredFile) -> None:
        if not self.cleanup_on_rpc_failure:
            logger.warning("Keeping orphaned upload after failed call", extra={"stored_as": stored.filename})
            return
        try:
            stored.path.unlink()
        except FileNotFoundError:
            return
        except OSError:
            logger.exception("Failed to remove orphaned upload %s", stored.filename)
            return
        logger.info("Removed upload after failed call", extra={"stored_as": stored.filename})
