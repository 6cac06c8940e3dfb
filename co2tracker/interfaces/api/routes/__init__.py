from fastapi import FastAPI

from co2tracker.config import Settings

from .realtime import router as realtime_router


def register_routes(app: FastAPI, settings: Settings) -> None:
    """Register every API router on the FastAPI application."""

    app.include_router(realtime_router, prefix=settings.realtime_path)
