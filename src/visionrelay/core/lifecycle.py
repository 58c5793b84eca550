"""Classifier lifecycle: create, look up, and auto-expire trained classifiers.

Every classifier created here is deleted from the remote service once the
configured TTL (one hour by default) has elapsed. The deletion is scheduled on
the running event loop, keyed by classifier id, and cannot be cancelled
through this module. It is attempted once; failures are logged, not retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from visionrelay.core.cleanup import released
from visionrelay.core.remote import ClassifierForm
from visionrelay.errors import MalformedInputError, RemoteServiceError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from visionrelay.config import Settings
    from visionrelay.core.remote import Payload, VisionService

logger = logging.getLogger(__name__)


class ClassifierManager:
    """Creates classifiers on the remote service and schedules their deletion."""

    def __init__(self, service: VisionService, settings: Settings) -> None:
        self._service = service
        self._ttl = settings.classifier_ttl
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._deletions: set[asyncio.Task[None]] = set()

    # -- Public API ---------------------------------------------------------

    async def create_classifier(
        self,
        name: str,
        *,
        bundles: Mapping[str, Sequence[Path]] | None = None,
        negative_bundle: Path | None = None,
        uploads: Sequence[Path] = (),
        class_names: Sequence[str] = (),
        negative_upload: Path | None = None,
    ) -> Payload:
        """Train a classifier from sample bundles or uploaded archives.

        ``uploads[i]`` holds the positive examples of ``class_names[i]``.
        Uploaded archives are deleted once the remote call finishes, whether it
        succeeded or not. Bundle archives are shared and never deleted.

        Raises:
            MalformedInputError: If no positive examples were given, or the
                class names do not pair up with the uploads.
            RemoteServiceError: If the remote service rejects the request.
        """
        owned = list(uploads)
        if negative_upload is not None:
            owned.append(negative_upload)

        with released(*owned):
            form = self._build_form(name, bundles, negative_bundle, uploads, class_names, negative_upload)
            classifier = await self._service.create_classifier(form)

        classifier_id = classifier.get("classifier_id")
        logger.info("Created classifier %s (%s)", classifier_id, ", ".join(form.keys()))
        if classifier_id:
            self._schedule_deletion(str(classifier_id))
        return classifier

    async def get_classifier(self, classifier_id: str) -> Payload:
        """Return the remote descriptor (including training status) for an id."""
        return await self._service.get_classifier(classifier_id)

    def deletion_deadline(self, classifier_id: str) -> float | None:
        """Loop time at which the classifier's deletion fires, if still pending."""
        timer = self._timers.get(classifier_id)
        return timer.when() if timer is not None else None

    @property
    def pending_deletions(self) -> int:
        return len(self._timers)

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _build_form(
        name: str,
        bundles: Mapping[str, Sequence[Path]] | None,
        negative_bundle: Path | None,
        uploads: Sequence[Path],
        class_names: Sequence[str],
        negative_upload: Path | None,
    ) -> ClassifierForm:
        form = ClassifierForm(name=name)
        if uploads:
            if len(class_names) != len(uploads) or not all(class_names):
                raise MalformedInputError("Each uploaded file needs a class name")
            for class_name, path in zip(class_names, uploads, strict=True):
                form.positive_examples.setdefault(class_name, []).append(path)
            form.negative_examples = negative_upload
        elif bundles:
            form.positive_examples = {class_name: list(paths) for class_name, paths in bundles.items()}
            form.negative_examples = negative_bundle

        if not form.positive_examples:
            raise MalformedInputError("No positive examples supplied")
        return form

    def _schedule_deletion(self, classifier_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._timers[classifier_id] = loop.call_later(self._ttl, self._fire_deletion, classifier_id)
        logger.info("Classifier %s scheduled for deletion in %.0fs", classifier_id, self._ttl)

    def _fire_deletion(self, classifier_id: str) -> None:
        self._timers.pop(classifier_id, None)
        task = asyncio.get_running_loop().create_task(self._delete(classifier_id))
        self._deletions.add(task)
        task.add_done_callback(self._deletions.discard)

    async def _delete(self, classifier_id: str) -> None:
        try:
            await self._service.delete_classifier(classifier_id)
        except RemoteServiceError as exc:
            logger.warning("Could not delete classifier %s: %s (%s)", classifier_id, exc.message, exc.code)
        except Exception:
            logger.exception("Could not delete classifier %s", classifier_id)
        else:
            logger.info("Deleted expired classifier %s", classifier_id)
