"""Image source resolution.

Turns the raw fields of a classification request (an uploaded file, a URL
string, a base64 data URI) into a single canonical :data:`ImageReference`.

Resolution order, first match wins:
    upload -> local ``images/...`` reference -> base64 payload -> remote URL
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from pydantic import HttpUrl, TypeAdapter, ValidationError

from visionrelay.errors import MalformedInputError

if TYPE_CHECKING:
    from visionrelay.config import Settings

logger = logging.getLogger(__name__)

_BASE64_IMAGE_PATTERN = re.compile(r"^data:image/([A-Za-z\-+/]+);base64,(.+)$")
_URL_ADAPTER: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


@dataclass(frozen=True)
class FileStream:
    """An image file on local disk.

    ``owned`` is True when the request created the file (upload or decoded
    base64 payload) and must delete it once classification is done.
    """

    path: Path
    owned: bool

    def open(self) -> BinaryIO:
        return self.path.open("rb")


@dataclass(frozen=True)
class RemoteURL:
    """An absolute http(s) URL the remote service fetches itself."""

    url: str


ImageReference = FileStream | RemoteURL


@dataclass(frozen=True)
class Base64Image:
    """A decoded ``data:image/...;base64,`` payload."""

    extension: str
    data: bytes


def parse_base64_image(image_data: str) -> Base64Image:
    """Decode a data URI into its file extension and raw bytes.

    ``jpeg`` is normalised to ``jpg``; any other subtype is used verbatim.

    Raises:
        MalformedInputError: If the string is not an image data URI or the
            payload is not valid base64.
    """
    match = _BASE64_IMAGE_PATTERN.match(image_data)
    if match is None:
        raise MalformedInputError("Malformed base64 image data")

    subtype, payload = match.groups()
    try:
        data = base64.b64decode(payload)
    except (binascii.Error, ValueError):
        raise MalformedInputError("Malformed base64 image data") from None

    extension = "jpg" if subtype == "jpeg" else subtype
    return Base64Image(extension=extension, data=data)


def is_valid_url(url: str) -> bool:
    try:
        _URL_ADAPTER.validate_python(url)
    except ValidationError:
        return False
    return True


class ImageResolver:
    """Resolves request fields to an :data:`ImageReference`."""

    def __init__(self, settings: Settings) -> None:
        self._public_dir = Path(settings.public_dir).resolve()
        self._local_prefix = settings.local_prefix
        self._upload_dir = Path(settings.upload_dir)

    def resolve(
        self,
        upload: Path | None = None,
        url: str | None = None,
        image_data: str | None = None,
    ) -> ImageReference:
        """Pick the image source for a classification request.

        Args:
            upload: Path of an uploaded file already written to disk.
            url: Either a local sample reference (``images/...``) or a
                remote image URL.
            image_data: A ``data:image/<subtype>;base64,<data>`` string.

        Raises:
            MalformedInputError: If no field yields a usable image.
        """
        if upload is not None:
            return FileStream(path=Path(upload), owned=True)

        if url and url.startswith(self._local_prefix):
            return FileStream(path=self._local_path(url), owned=False)

        if image_data:
            return FileStream(path=self._write_temp_image(image_data), owned=True)

        if url and is_valid_url(url):
            return RemoteURL(url=url)

        raise MalformedInputError("Malformed URL")

    def _local_path(self, reference: str) -> Path:
        path = (self._public_dir / reference).resolve()
        if not path.is_relative_to(self._public_dir) or not path.is_file():
            raise MalformedInputError(f"Image not found: {reference}")
        return path

    def _write_temp_image(self, image_data: str) -> Path:
        resource = parse_base64_image(image_data)
        temp = self._upload_dir / f"{uuid.uuid4()}.{resource.extension}"
        temp.write_bytes(resource.data)
        logger.debug("Wrote base64 image to %s (%d bytes)", temp, len(resource.data))
        return temp
