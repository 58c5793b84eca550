"""Run the VisionRelay server with uvicorn."""

from __future__ import annotations


def main() -> None:
    import uvicorn

    from visionrelay.config import get_settings

    settings = get_settings()
    uvicorn.run("visionrelay.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
