"""Tests for the httpx visual recognition client."""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

from visionrelay.config import Settings
from visionrelay.core.remote import ClassifierForm, ClassifyParams, VisualRecognitionClient
from visionrelay.core.resolver import FileStream, RemoteURL
from visionrelay.errors import RemoteServiceError


def _client(settings: Settings, handler: httpx.MockTransport | None = None, **overrides: object) -> VisualRecognitionClient:
    return VisualRecognitionClient(settings.model_copy(update=overrides), transport=handler)


class Recorder:
    """MockTransport handler that records requests and replies with a fixed response."""

    def __init__(self, response: httpx.Response | Exception | None = None) -> None:
        self.response = response if response is not None else httpx.Response(200, json={"images": []})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class TestCapabilities:
    async def test_classify_uploads_file(self, settings: Settings, tmp_path: Path) -> None:
        image = tmp_path / "dog.jpg"
        image.write_bytes(b"jpeg-bytes")
        recorder = Recorder()
        client = _client(settings, recorder.transport, service_api_key="secret")

        payload = await client.classify(ClassifyParams(image=FileStream(path=image, owned=False)))

        assert payload == {"images": []}
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v3/classify"
        assert request.url.params["api_key"] == "secret"
        assert request.url.params["version"] == settings.service_version
        assert b'name="images_file"; filename="dog.jpg"' in request.content
        assert b"jpeg-bytes" in request.content
        await client.aclose()

    async def test_remote_url_sent_as_parameters(self, settings: Settings) -> None:
        recorder = Recorder()
        client = _client(settings, recorder.transport)

        await client.detect_faces(
            ClassifyParams(image=RemoteURL(url="https://example.com/a.jpg"), classifier_ids=["dogs_1"])
        )

        request = recorder.requests[0]
        assert request.url.path == "/api/v3/detect_faces"
        assert "api_key" not in request.url.params
        form = parse_qs(request.content.decode())
        assert json.loads(form["parameters"][0]) == {"classifier_ids": ["dogs_1"], "url": "https://example.com/a.jpg"}
        await client.aclose()

    async def test_recognize_text_endpoint(self, settings: Settings) -> None:
        recorder = Recorder()
        client = _client(settings, recorder.transport)

        await client.recognize_text(ClassifyParams(image=RemoteURL(url="https://example.com/a.jpg")))

        assert recorder.requests[0].url.path == "/api/v3/recognize_text"
        await client.aclose()


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


class TestClassifiers:
    async def test_create_classifier_posts_multipart(self, settings: Settings, tmp_path: Path) -> None:
        husky = tmp_path / "husky.zip"
        husky.write_bytes(b"PK-husky")
        cats = tmp_path / "cats.zip"
        cats.write_bytes(b"PK-cats")
        recorder = Recorder(httpx.Response(200, json={"classifier_id": "dogs_1", "status": "training"}))
        client = _client(settings, recorder.transport)

        form = ClassifierForm(name="dogs", positive_examples={"husky": [husky]}, negative_examples=cats)
        classifier = await client.create_classifier(form)

        assert classifier["classifier_id"] == "dogs_1"
        body = recorder.requests[0].content
        assert recorder.requests[0].url.path == "/api/v3/classifiers"
        assert b'name="name"' in body
        assert b'name="husky_positive_examples"; filename="husky.zip"' in body
        assert b'name="negative_examples"; filename="cats.zip"' in body
        await client.aclose()

    async def test_get_and_delete_classifier(self, settings: Settings) -> None:
        recorder = Recorder(httpx.Response(200, json={"classifier_id": "dogs_1", "status": "ready"}))
        client = _client(settings, recorder.transport)

        assert (await client.get_classifier("dogs_1"))["status"] == "ready"
        recorder.response = httpx.Response(200)
        await client.delete_classifier("dogs_1")

        assert [(r.method, r.url.path) for r in recorder.requests] == [
            ("GET", "/api/v3/classifiers/dogs_1"),
            ("DELETE", "/api/v3/classifiers/dogs_1"),
        ]
        await client.aclose()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_flat_error_body_kept_verbatim(self, settings: Settings) -> None:
        body = {"code": 404, "error": "Cannot find classifier", "classifier_id": "x"}
        client = _client(settings, Recorder(httpx.Response(404, json=body)).transport)

        with pytest.raises(RemoteServiceError) as excinfo:
            await client.get_classifier("x")

        assert excinfo.value.code == 404
        assert excinfo.value.message == "Cannot find classifier"
        assert excinfo.value.to_payload() == body
        await client.aclose()

    async def test_nested_error_body(self, settings: Settings) -> None:
        body = {"error": {"code": 400, "description": "Invalid API key", "error_id": "parameter_error"}}
        client = _client(settings, Recorder(httpx.Response(400, json=body)).transport)

        with pytest.raises(RemoteServiceError) as excinfo:
            await client.classify(ClassifyParams(image=RemoteURL(url="https://example.com/a.jpg")))

        assert excinfo.value.code == 400
        assert excinfo.value.message == "Invalid API key"
        await client.aclose()

    async def test_non_json_error_uses_status(self, settings: Settings) -> None:
        client = _client(settings, Recorder(httpx.Response(502, text="Bad Gateway")).transport)

        with pytest.raises(RemoteServiceError) as excinfo:
            await client.get_classifier("x")

        assert excinfo.value.code == 502
        assert excinfo.value.to_payload() == {"error": "Bad Gateway", "code": 502}
        await client.aclose()

    async def test_transport_error_defaults_to_500(self, settings: Settings) -> None:
        client = _client(settings, Recorder(httpx.ConnectError("connection refused")).transport)

        with pytest.raises(RemoteServiceError) as excinfo:
            await client.get_classifier("x")

        assert excinfo.value.code == 500
        await client.aclose()

    async def test_non_json_success_body_is_bad_gateway(self, settings: Settings) -> None:
        client = _client(settings, Recorder(httpx.Response(200, text="<html>proxy login</html>")).transport)

        with pytest.raises(RemoteServiceError) as excinfo:
            await client.classify(ClassifyParams(image=RemoteURL(url="https://example.com/a.jpg")))

        assert excinfo.value.code == 502
        assert excinfo.value.to_payload() == {
            "error": "Visual recognition service returned an invalid response",
            "code": 502,
        }
        await client.aclose()
