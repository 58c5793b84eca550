"""Shared fixtures: settings rooted in tmp_path and an in-memory recognition service."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from visionrelay.config import Settings
from visionrelay.core.remote import ClassifierForm, ClassifyParams, Payload
from visionrelay.core.resolver import FileStream
from visionrelay.errors import RemoteServiceError

CLASSIFY_PAYLOAD: Payload = {
    "images_processed": 1,
    "images": [{"classifiers": [{"classifier_id": "default", "classes": [{"class": "dog", "score": 0.9}]}]}],
}
FACES_PAYLOAD: Payload = {
    "images_processed": 1,
    "images": [{"faces": [{"age": {"min": 25, "max": 34}, "gender": {"gender": "FEMALE"}}]}],
}
TEXT_PAYLOAD: Payload = {
    "images_processed": 1,
    "images": [{"text": "hello", "words": [{"word": "hello", "score": 0.8}]}],
}


class FakeVisionService:
    """Records every call and answers from a per-operation script.

    A scripted value that is an exception is raised instead of returned.
    """

    def __init__(self, **responses: Any) -> None:
        self.responses: dict[str, Any] = {
            "classify": CLASSIFY_PAYLOAD,
            "detect_faces": FACES_PAYLOAD,
            "recognize_text": TEXT_PAYLOAD,
            "create_classifier": {"classifier_id": "dogs_1", "name": "dogs", "status": "training"},
            "get_classifier": {"classifier_id": "dogs_1", "name": "dogs", "status": "ready"},
            "delete_classifier": None,
        }
        self.responses.update(responses)
        self.calls: list[tuple[str, Any]] = []
        self.forms: list[ClassifierForm] = []
        self.files_seen: dict[str, bool] = {}
        self.deleted: list[str] = []

    async def _respond(self, operation: str, argument: Any) -> Any:
        self.calls.append((operation, argument))
        if isinstance(argument, ClassifyParams) and isinstance(argument.image, FileStream):
            self.files_seen[operation] = argument.image.path.exists()
        await asyncio.sleep(0)
        response = self.responses[operation]
        if isinstance(response, BaseException):
            raise response
        return response

    async def classify(self, params: ClassifyParams) -> Payload:
        return await self._respond("classify", params)

    async def detect_faces(self, params: ClassifyParams) -> Payload:
        return await self._respond("detect_faces", params)

    async def recognize_text(self, params: ClassifyParams) -> Payload:
        return await self._respond("recognize_text", params)

    async def create_classifier(self, form: ClassifierForm) -> Payload:
        self.forms.append(form)
        return await self._respond("create_classifier", form)

    async def get_classifier(self, classifier_id: str) -> Payload:
        return await self._respond("get_classifier", classifier_id)

    async def delete_classifier(self, classifier_id: str) -> None:
        await self._respond("delete_classifier", classifier_id)
        self.deleted.append(classifier_id)

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


def remote_error(code: int | None, message: str = "boom") -> RemoteServiceError:
    return RemoteServiceError(message, code=code, payload={"error": message, "code": code})


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings with every directory under tmp_path."""
    public_dir = tmp_path / "public"
    (public_dir / "images").mkdir(parents=True)
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    bundles_dir = tmp_path / "bundles"
    bundles_dir.mkdir()
    return Settings(
        public_dir=str(public_dir),
        upload_dir=str(upload_dir),
        bundles_dir=str(bundles_dir),
        service_url="https://vr.test/api",
    )


@pytest.fixture()
def service() -> FakeVisionService:
    return FakeVisionService()
