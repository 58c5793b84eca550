"""Parallel classification orchestrator.

Architecture:
    request fields -> ImageResolver -> asyncio.gather(capability calls) -> ordered merge

Each capability call is isolated: any error it raises is captured as that
capability's outcome and never cancels its siblings. The merge follows the
fixed capability order, so results do not depend on completion order.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from visionrelay.core.cleanup import release_reference
from visionrelay.core.remote import ClassifyParams
from visionrelay.errors import DEFAULT_ERROR_CODE, RemoteServiceError, StructuralError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence
    from pathlib import Path

    from visionrelay.core.remote import Payload, VisionService
    from visionrelay.core.resolver import ImageReference, ImageResolver

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves untouched.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class Capability(StrEnum):
    CLASSIFY = "classify"
    DETECT_FACES = "detectFaces"
    RECOGNIZE_TEXT = "recognizeText"


ALL_CAPABILITIES: tuple[Capability, ...] = (
    Capability.CLASSIFY,
    Capability.DETECT_FACES,
    Capability.RECOGNIZE_TEXT,
)


def select_capabilities(classifier_id: str | None) -> tuple[Capability, ...]:
    """A custom classifier only runs ``classify``; otherwise run everything."""
    if classifier_id:
        return (Capability.CLASSIFY,)
    return ALL_CAPABILITIES


@dataclass(frozen=True)
class CapabilityOutcome:
    """Result of one capability call: a payload or an error, never both."""

    capability: Capability
    payload: Payload | None = None
    error: RemoteServiceError | None = None

    def serialized(self) -> str:
        """Percent-encoded JSON of the payload, or of the error body on failure."""
        body = self.payload if self.error is None else self.error.to_payload()
        return quote(json.dumps(body, separators=(",", ":")), safe=_URI_COMPONENT_SAFE)


@dataclass
class MergedResult:
    """Union of every successful capability payload plus per-capability raw output."""

    payload: Payload
    raw: dict[str, str] = field(default_factory=dict)
    classifier_ids: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body = dict(self.payload)
        if self.classifier_ids:
            body["classifier_ids"] = self.classifier_ids
        body["raw"] = dict(self.raw)
        return body


def merge_payloads(payloads: Sequence[Mapping[str, Any]]) -> Payload | None:
    """Merge capability payloads in order.

    Top-level keys take the last value, except ``images``: image entries are
    merged by position so each image collects the fields every capability
    reported for it (``classifiers``, ``faces``, ``words``, ...). Returns None
    when there is nothing to merge.
    """
    if not payloads:
        return None

    merged: Payload = {}
    for payload in payloads:
        for key, value in payload.items():
            if key == "images" and isinstance(value, list):
                merged[key] = _merge_images(merged.get(key, []), value)
            else:
                merged[key] = value
    return merged


def _merge_images(current: list[Any], incoming: list[Any]) -> list[Any]:
    merged = list(current)
    for index, image in enumerate(incoming):
        if index < len(merged) and isinstance(merged[index], dict) and isinstance(image, dict):
            merged[index] = {**merged[index], **image}
        elif index < len(merged):
            merged[index] = image
        else:
            merged.append(image)
    return merged


class ClassificationOrchestrator:
    """Fans an image out to the remote capabilities and fans the results back in."""

    def __init__(self, service: VisionService, resolver: ImageResolver) -> None:
        self._resolver = resolver
        self._calls: dict[Capability, Callable[[ClassifyParams], Awaitable[Payload]]] = {
            Capability.CLASSIFY: service.classify,
            Capability.DETECT_FACES: service.detect_faces,
            Capability.RECOGNIZE_TEXT: service.recognize_text,
        }

    async def classify_image(
        self,
        *,
        upload: Path | None = None,
        url: str | None = None,
        image_data: str | None = None,
        classifier_id: str | None = None,
    ) -> MergedResult:
        """Resolve the image source and classify it.

        Raises:
            MalformedInputError: If no usable image source was supplied.
            RemoteServiceError: If every capability failed.
            StructuralError: If the concurrent wait itself failed.
        """
        reference = await asyncio.to_thread(self._resolver.resolve, upload=upload, url=url, image_data=image_data)
        return await self.run(reference, classifier_id or None)

    async def run(self, reference: ImageReference, classifier_id: str | None = None) -> MergedResult:
        """Invoke the selected capabilities concurrently and merge their outcomes.

        The reference's file is released once every call has finished, on
        success and on failure.
        """
        capabilities = select_capabilities(classifier_id)
        params = ClassifyParams(
            image=reference,
            classifier_ids=[classifier_id] if classifier_id else None,
        )

        try:
            outcomes: list[CapabilityOutcome] = await asyncio.gather(
                *(self._invoke(capability, params) for capability in capabilities)
            )
        except Exception as exc:
            code = getattr(exc, "code", None)
            logger.exception("Classification wait failed")
            raise StructuralError(str(exc) or type(exc).__name__, code if isinstance(code, int) else None) from exc
        finally:
            release_reference(reference)

        merged = merge_payloads([outcome.payload for outcome in outcomes if outcome.payload is not None])
        if merged is None:
            raise outcomes[0].error or StructuralError("No capability produced a result")

        return MergedResult(
            payload=merged,
            raw={outcome.capability.value: outcome.serialized() for outcome in outcomes},
            classifier_ids=classifier_id,
        )

    async def _invoke(self, capability: Capability, params: ClassifyParams) -> CapabilityOutcome:
        try:
            payload = await self._calls[capability](params)
        except RemoteServiceError as exc:
            logger.warning("Capability %s failed: %s (%s)", capability, exc.message, exc.code)
            return CapabilityOutcome(capability=capability, error=exc)
        except Exception as exc:
            logger.exception("Capability %s failed unexpectedly", capability)
            error = RemoteServiceError(str(exc) or type(exc).__name__, code=DEFAULT_ERROR_CODE)
            return CapabilityOutcome(capability=capability, error=error)
        return CapabilityOutcome(capability=capability, payload=payload)
