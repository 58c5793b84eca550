"""Best-effort removal of uploaded and temporary files.

Deletion never raises: a failure is logged and the caller carries on. A second
deletion of the same path simply logs the missing file.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from visionrelay.core.resolver import FileStream

if TYPE_CHECKING:
    from collections.abc import Iterator

    from visionrelay.core.resolver import ImageReference

logger = logging.getLogger(__name__)


def delete_uploaded_file(path: str | Path) -> None:
    """Delete ``path``, logging (not raising) any failure."""
    try:
        Path(path).unlink()
    except OSError as exc:
        logger.warning("Error deleting %s: %s", path, exc)
    else:
        logger.debug("Deleted %s", path)


@contextmanager
def released(*paths: str | Path) -> Iterator[None]:
    """Delete every path once the block exits, whatever the outcome."""
    try:
        yield
    finally:
        for path in paths:
            delete_uploaded_file(path)


def release_reference(reference: ImageReference) -> None:
    """Delete the file behind ``reference`` if the request owns it.

    Remote URLs and local sample images are left alone.
    """
    if isinstance(reference, FileStream) and reference.owned:
        delete_uploaded_file(reference.path)
