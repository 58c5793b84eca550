"""Catalog of the sample training bundles shipped with the app.

Layout on disk::

    <bundles_dir>/<kind>/<bundle>.zip
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

from visionrelay.errors import MalformedInputError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from visionrelay.config import Settings

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class BundleCatalog:
    """Looks up example bundles by kind and name."""

    def __init__(self, settings: Settings) -> None:
        self._root = Path(settings.bundles_dir)

    def positive(self, kind: str, names: Sequence[str]) -> dict[str, list[Path]]:
        """Return ``{bundle: [archive]}`` for each named positive bundle."""
        if not names:
            raise MalformedInputError("At least one bundle is required")
        return {name: [self._archive(kind, name)] for name in names}

    def negative(self, kind: str, name: str) -> Path:
        return self._archive(kind, name)

    def _archive(self, kind: str, name: str) -> Path:
        for part in (kind, name):
            if not _NAME_PATTERN.match(part):
                raise MalformedInputError(f"Invalid bundle name: {part!r}")
        path = self._root / kind / f"{name}.zip"
        if not path.is_file():
            raise MalformedInputError(f"Unknown bundle: {kind}/{name}")
        return path
