"""Pydantic response schemas for the VisionRelay API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClassifierResponse(BaseModel):
    """A remote classifier descriptor; unknown remote fields pass through."""

    model_config = ConfigDict(extra="allow")

    classifier_id: str
    name: str | None = None
    status: str | None = Field(default=None, description="Training status: 'training', 'ready', or 'failed'")


class ClassifyResponse(BaseModel):
    """Merged output of every capability that succeeded."""

    model_config = ConfigDict(extra="allow")

    classifier_ids: str | None = Field(default=None, description="Custom classifier used, if any")
    raw: dict[str, str] = Field(description="Percent-encoded JSON outcome of each capability")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service_url: str
    pending_deletions: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    model_config = ConfigDict(extra="allow")

    error: Any
    code: int
