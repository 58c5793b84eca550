"""Persist multipart uploads to disk so the core can stream and later delete them."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import TYPE_CHECKING

from visionrelay.core.cleanup import delete_uploaded_file

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fastapi import UploadFile

logger = logging.getLogger(__name__)


def store_upload(upload: UploadFile, directory: str | Path) -> Path:
    """Write ``upload`` to ``directory`` as ``<epoch-ms>-<filename>``."""
    filename = Path(upload.filename or "upload").name
    destination = Path(directory) / f"{int(time.time() * 1000)}-{filename}"
    upload.file.seek(0)
    with destination.open("wb") as out:
        shutil.copyfileobj(upload.file, out)
    logger.debug("Stored upload %s at %s", upload.filename, destination)
    return destination


def store_uploads(uploads: Sequence[UploadFile], directory: str | Path) -> list[Path]:
    """Store every upload; on failure, remove the ones already written."""
    stored: list[Path] = []
    try:
        for upload in uploads:
            stored.append(store_upload(upload, directory))
    except OSError:
        for path in stored:
            delete_uploaded_file(path)
        raise
    return stored
