"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .trigger.trigger_api import health_router
from .trigger.trigger_api import router as trigger_router


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach configuration."""
    app.state.config = config
    app.include_router(trigger_router)
    app.include_router(health_router)
