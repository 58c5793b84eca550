"""Error taxonomy shared by the core and the HTTP layer."""

from __future__ import annotations

from typing import Any

DEFAULT_ERROR_CODE = 500


class VisionRelayError(Exception):
    """Base error carrying an HTTP-style status code."""

    default_code = DEFAULT_ERROR_CODE

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_payload(self) -> dict[str, Any]:
        """Return the structured ``{error, code}`` body sent to clients."""
        return {"error": self.message, "code": self.code}


class MalformedInputError(VisionRelayError):
    """No usable image source, or a request field that cannot be parsed."""

    default_code = 400


class RemoteServiceError(VisionRelayError):
    """A failure reported by (or while reaching) the remote classification service.

    The remote's own error body is kept in ``payload`` so it can be surfaced
    verbatim to the caller.
    """

    def __init__(self, message: str, code: int | None = None, payload: dict[str, Any] | None = None) -> None:
        super().__init__(message, code)
        self.payload = dict(payload or {})

    def to_payload(self) -> dict[str, Any]:
        body = dict(self.payload)
        body["error"] = body.get("error") or self.message
        body["code"] = self.code
        return body


class StructuralError(VisionRelayError):
    """The concurrent wait itself failed, as opposed to a single capability."""
