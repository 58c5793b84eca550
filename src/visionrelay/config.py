"""Environment-based configuration for VisionRelay."""

from __future__ import annotations

import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from VISIONRELAY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VISIONRELAY_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000

    # Remote classification service
    service_url: str = "https://gateway-a.watsonplatform.net/visual-recognition/api"
    service_api_key: str | None = None
    service_version: str = "2016-05-20"
    request_timeout: float = Field(default=60.0, gt=0)

    # Image sources
    public_dir: str = "public"
    local_prefix: str = "images"
    upload_dir: str = Field(default_factory=tempfile.gettempdir)

    # Classifier training
    bundles_dir: str = "public/images/bundles"
    max_class_uploads: int = Field(default=3, ge=1)
    classifier_ttl: float = Field(default=3600.0, gt=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
