"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from visionrelay.config import Settings
    from visionrelay.core.remote import VisionService

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from visionrelay.api.routes import router
from visionrelay.config import get_settings
from visionrelay.core.bundles import BundleCatalog
from visionrelay.core.lifecycle import ClassifierManager
from visionrelay.core.orchestrator import ClassificationOrchestrator
from visionrelay.core.remote import VisualRecognitionClient
from visionrelay.core.resolver import ImageResolver
from visionrelay.errors import DEFAULT_ERROR_CODE, VisionRelayError

logger = logging.getLogger(__name__)


def init_state(app: FastAPI, settings: Settings, client: VisionService) -> None:
    """Wire the core components onto ``app.state``."""
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    app.state.settings = settings
    app.state.orchestrator = ClassificationOrchestrator(client, ImageResolver(settings))
    app.state.classifier_manager = ClassifierManager(client, settings)
    app.state.bundle_catalog = BundleCatalog(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting VisionRelay (service=%s, version=%s, classifier_ttl=%ss)",
        settings.service_url,
        settings.service_version,
        settings.classifier_ttl,
    )

    client = VisualRecognitionClient(settings)
    init_state(app, settings, client)

    logger.info("VisionRelay ready")
    yield

    logger.info("Shutting down VisionRelay")
    pending = app.state.classifier_manager.pending_deletions
    if pending:
        logger.warning("%d classifier deletion(s) still pending at shutdown", pending)
    await client.aclose()
    logger.info("VisionRelay shutdown complete")


async def handle_vision_relay_error(request: Request, exc: Exception) -> JSONResponse:
    """Render core errors as ``{error, code}`` with the matching status code."""
    if not isinstance(exc, VisionRelayError):
        raise exc
    return JSONResponse(status_code=exc.code, content=exc.to_payload())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log anything unhandled and answer with a structured 500."""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=DEFAULT_ERROR_CODE,
        content={"error": "Internal server error", "code": DEFAULT_ERROR_CODE},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="VisionRelay",
        description="Image classification, face detection and text recognition via a remote recognition service",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(VisionRelayError, handle_vision_relay_error)
    application.add_exception_handler(Exception, handle_unexpected_error)
    application.include_router(router)
    return application


app = create_app()
