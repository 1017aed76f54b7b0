"""Lifespan wiring for the FastAPI application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import FastAPI

from .config import AppConfig
from .pipeline.pipeline_context import ServiceContext
from .pipeline.pipeline_driver import PipelineDriver
from .trigger.trigger_service import TriggerService

logger = logging.getLogger(__name__)


def build_lifespan(
    config: AppConfig,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Bind the service context to the application lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with ServiceContext.from_config(config) as context:
            app.state.service_context = context
            app.state.trigger_service = TriggerService(
                context=context, driver=PipelineDriver.from_config(config)
            )
            logger.info("lifecycle.started")
            yield
        logger.info("lifecycle.stopped")

    return lifespan


__all__ = ["build_lifespan"]
