"""Client for the remote visual recognition service.

The core only depends on the :class:`VisionService` protocol; the concrete
:class:`VisualRecognitionClient` speaks the service's v3 HTTP API over httpx.
"""

from __future__ import annotations

import json
import logging
import mimetypes
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from visionrelay.core.resolver import FileStream, RemoteURL
from visionrelay.errors import DEFAULT_ERROR_CODE, RemoteServiceError

if TYPE_CHECKING:
    from pathlib import Path

    from visionrelay.config import Settings
    from visionrelay.core.resolver import ImageReference

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClassifyParams:
    """Parameters shared by every capability call for one image."""

    image: ImageReference
    classifier_ids: list[str] | None = None


@dataclass
class ClassifierForm:
    """Multipart form for training a classifier.

    ``positive_examples`` maps a class name to its example archives; each class
    is submitted under ``<class>_positive_examples``.
    """

    name: str
    positive_examples: dict[str, list[Path]] = field(default_factory=dict)
    negative_examples: Path | None = None

    def file_fields(self) -> list[tuple[str, Path]]:
        fields = [
            (f"{class_name}_positive_examples", path)
            for class_name, paths in self.positive_examples.items()
            for path in paths
        ]
        if self.negative_examples is not None:
            fields.append(("negative_examples", self.negative_examples))
        return fields

    def keys(self) -> list[str]:
        """Return the form field names in submission order, ``name`` first."""
        seen = ["name"]
        for key, _path in self.file_fields():
            if key not in seen:
                seen.append(key)
        return seen


# ---------------------------------------------------------------------------
# Protocol (kept for test doubles)
# ---------------------------------------------------------------------------


class VisionService(Protocol):
    """The remote operations the core consumes."""

    async def classify(self, params: ClassifyParams) -> Payload: ...

    async def detect_faces(self, params: ClassifyParams) -> Payload: ...

    async def recognize_text(self, params: ClassifyParams) -> Payload: ...

    async def create_classifier(self, form: ClassifierForm) -> Payload: ...

    async def get_classifier(self, classifier_id: str) -> Payload: ...

    async def delete_classifier(self, classifier_id: str) -> None: ...


# ---------------------------------------------------------------------------
# httpx implementation
# ---------------------------------------------------------------------------


class VisualRecognitionClient:
    """Async HTTP client for the visual recognition v3 API."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        params = {"version": settings.service_version}
        if settings.service_api_key is not None:
            params["api_key"] = settings.service_api_key

        self._client = httpx.AsyncClient(
            base_url=settings.service_url,
            params=params,
            timeout=settings.request_timeout,
            transport=transport,
        )

    # -- Capabilities -------------------------------------------------------

    async def classify(self, params: ClassifyParams) -> Payload:
        return await self._post_image("/v3/classify", params)

    async def detect_faces(self, params: ClassifyParams) -> Payload:
        return await self._post_image("/v3/detect_faces", params)

    async def recognize_text(self, params: ClassifyParams) -> Payload:
        return await self._post_image("/v3/recognize_text", params)

    # -- Classifiers --------------------------------------------------------

    async def create_classifier(self, form: ClassifierForm) -> Payload:
        with ExitStack() as stack:
            files = [
                (key, (path.name, stack.enter_context(path.open("rb")), "application/zip"))
                for key, path in form.file_fields()
            ]
            return await self._request("POST", "/v3/classifiers", data={"name": form.name}, files=files)

    async def get_classifier(self, classifier_id: str) -> Payload:
        return await self._request("GET", f"/v3/classifiers/{classifier_id}")

    async def delete_classifier(self, classifier_id: str) -> None:
        await self._request("DELETE", f"/v3/classifiers/{classifier_id}")

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- Internal -----------------------------------------------------------

    async def _post_image(self, endpoint: str, params: ClassifyParams) -> Payload:
        parameters: Payload = {}
        if params.classifier_ids:
            parameters["classifier_ids"] = params.classifier_ids

        image = params.image
        if isinstance(image, RemoteURL):
            parameters["url"] = image.url
            return await self._request("POST", endpoint, data={"parameters": json.dumps(parameters)})

        if not isinstance(image, FileStream):
            raise TypeError(f"Unsupported image reference: {image!r}")

        content_type = mimetypes.guess_type(image.path.name)[0] or "application/octet-stream"
        data = {"parameters": json.dumps(parameters)} if parameters else None
        with image.open() as handle:
            return await self._request(
                "POST",
                endpoint,
                data=data,
                files={"images_file": (image.path.name, handle, content_type)},
            )

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Payload:
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, endpoint, exc)
            raise RemoteServiceError(f"Visual recognition service unreachable: {exc}") from exc

        if response.is_error:
            raise _error_from_response(response)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            logger.warning("%s %s returned a non-JSON body", method, endpoint)
            raise RemoteServiceError("Visual recognition service returned an invalid response", code=502) from None
        if not isinstance(body, dict):
            raise RemoteServiceError("Visual recognition service returned an invalid response", code=502)
        return body


def _error_from_response(response: httpx.Response) -> RemoteServiceError:
    """Translate an error response into a :class:`RemoteServiceError`.

    The service reports either ``{"code": ..., "error": "..."}`` or
    ``{"error": {"code": ..., "description": "..."}}``; both are kept verbatim.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return RemoteServiceError(response.text or response.reason_phrase, code=response.status_code)

    error = body.get("error")
    if isinstance(error, dict):
        message = str(error.get("description") or error.get("message") or response.reason_phrase)
        code = error.get("code") or body.get("code")
    else:
        message = str(error or body.get("description") or response.reason_phrase)
        code = body.get("code")

    if not isinstance(code, int):
        code = response.status_code or DEFAULT_ERROR_CODE
    logger.warning("Visual recognition service error %s: %s", code, message)
    return RemoteServiceError(message, code=code, payload=body)
