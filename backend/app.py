"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.v1 import api_router
from core import settings
from db.session import AsyncSessionMaker, async_engine
from services.notifications import EngineRegistry

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(registry: EngineRegistry | None = None) -> FastAPI:
    _configure_logging()
    engine_registry = (
        registry if registry is not None else EngineRegistry(AsyncSessionMaker)
    )

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        yield
        await application.state.engine_registry.shutdown()
        await async_engine.dispose()
        logger.info("Activity service stopped")

    application = FastAPI(title=settings.project_name, lifespan=lifespan)
    application.state.engine_registry = engine_registry
    application.include_router(api_router)
    return application


app = create_app()
