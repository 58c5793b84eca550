"""API route definitions."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, File, Form, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse

from visionrelay.api.schemas import ClassifierResponse, ClassifyResponse, ErrorResponse, HealthResponse
from visionrelay.api.thermometer import render_thermometer
from visionrelay.api.uploads import store_upload, store_uploads
from visionrelay.errors import MalformedInputError

if TYPE_CHECKING:
    from visionrelay.config import Settings
    from visionrelay.core.bundles import BundleCatalog
    from visionrelay.core.lifecycle import ClassifierManager
    from visionrelay.core.orchestrator import ClassificationOrchestrator

router = APIRouter(prefix="/api")

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_orchestrator(request: Request) -> ClassificationOrchestrator:
    orchestrator: ClassificationOrchestrator = request.app.state.orchestrator
    return orchestrator


def _get_classifier_manager(request: Request) -> ClassifierManager:
    manager: ClassifierManager = request.app.state.classifier_manager
    return manager


def _get_bundle_catalog(request: Request) -> BundleCatalog:
    catalog: BundleCatalog = request.app.state.bundle_catalog
    return catalog


@router.post(
    "/classify",
    response_model=None,
    responses={status.HTTP_200_OK: {"model": ClassifyResponse}, **_ERROR_RESPONSES},
    summary="Classify an image",
)
async def classify(
    request: Request,
    images_file: Annotated[UploadFile | None, File()] = None,
    url: Annotated[str | None, Form()] = None,
    image_data: Annotated[str | None, Form()] = None,
    classifier_id: Annotated[str | None, Form()] = None,
) -> JSONResponse:
    """Classify an uploaded file, a sample image, a base64 image, or an image URL.

    Without ``classifier_id`` the image is classified, searched for faces, and
    searched for text in parallel; with it only the custom classifier runs.
    """
    settings = _get_settings(request)
    upload = None
    if images_file is not None:
        upload = await asyncio.to_thread(store_upload, images_file, settings.upload_dir)

    result = await _get_orchestrator(request).classify_image(
        upload=upload,
        url=url,
        image_data=image_data,
        classifier_id=classifier_id,
    )
    return JSONResponse(content=result.to_dict())


@router.post(
    "/classifiers",
    response_model=None,
    responses={status.HTTP_200_OK: {"model": ClassifierResponse}, **_ERROR_RESPONSES},
    summary="Train a custom classifier",
)
async def create_classifier(
    request: Request,
    classupload: Annotated[list[UploadFile] | None, File()] = None,
    classname: Annotated[list[str] | None, Form()] = None,
    negativeclassupload: Annotated[list[UploadFile] | None, File()] = None,
    classifiername: Annotated[str | None, Form()] = None,
    kind: Annotated[str | None, Form()] = None,
    bundles: Annotated[list[str] | None, Form()] = None,
    negative: Annotated[str | None, Form()] = None,
) -> JSONResponse:
    """Create a classifier from uploaded zip archives or from sample bundles.

    Uploads: one ``classupload`` archive per ``classname``, plus an optional
    ``negativeclassupload``. Bundles: ``kind`` plus the selected ``bundles``
    (and optionally a ``negative`` bundle). The classifier is deleted after an
    hour.
    """
    settings = _get_settings(request)
    manager = _get_classifier_manager(request)

    if classupload:
        if len(classupload) > settings.max_class_uploads or len(negativeclassupload or []) > 1:
            raise MalformedInputError("Too many files uploaded")
        stored = await asyncio.to_thread(
            store_uploads, [*classupload, *(negativeclassupload or [])], settings.upload_dir
        )
        uploads, negatives = stored[: len(classupload)], stored[len(classupload) :]
        classifier = await manager.create_classifier(
            classifiername or "classifier",
            uploads=uploads,
            class_names=classname or [],
            negative_upload=negatives[0] if negatives else None,
        )
    else:
        if not kind:
            raise MalformedInputError("Missing required parameter: kind")
        catalog = _get_bundle_catalog(request)
        classifier = await manager.create_classifier(
            classifiername or kind,
            bundles=catalog.positive(kind, bundles or []),
            negative_bundle=catalog.negative(kind, negative) if negative else None,
        )

    return JSONResponse(content=classifier)


@router.get(
    "/classifiers/{classifier_id}",
    response_model=None,
    responses={status.HTTP_200_OK: {"model": ClassifierResponse}, **_ERROR_RESPONSES},
    summary="Get the status of a classifier",
)
async def get_classifier(request: Request, classifier_id: str) -> JSONResponse:
    """Return the classifier descriptor, including its training status."""
    classifier = await _get_classifier_manager(request).get_classifier(classifier_id)
    return JSONResponse(content=classifier)


@router.get(
    "/thermometer",
    response_class=Response,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
    summary="Render a score gauge",
)
async def thermometer(score: Annotated[str | None, Query()] = None) -> Response:
    """Render an SVG gauge for a 0..1 confidence score."""
    if score is None:
        raise MalformedInputError("Missing required parameter: score")
    try:
        value = float(score)
    except ValueError:
        raise MalformedInputError("Score value invalid") from None
    if not 0.0 <= value <= 1.0:
        raise MalformedInputError("Score value invalid")
    return Response(content=render_thermometer(value), media_type="image/svg+xml")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    return HealthResponse(
        status="ok",
        service_url=settings.service_url,
        pending_deletions=_get_classifier_manager(request).pending_deletions,
    )
