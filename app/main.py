from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from app.config import get_settings
from app.core.app_state import AppState
from app.infra.logging_config import configure_logging, get_logger
from app.routers import analytics, health, outbound, webhooks

logger = get_logger()


def create_app(testing: bool = False, pipeline: Optional[AppState] = None) -> FastAPI:
    """
    Build the FastAPI app.

    The pipeline (adapter, processor, analytics) is built once; pass one in to
    run against a test database or a stub LLM.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        if app.state.pipeline is None:
            app.state.pipeline = AppState(settings=settings)
        await app.state.pipeline.startup()
        logger.info("%s started (env=%s)", settings.app_name, settings.environment)
        try:
            yield
        finally:
            await app.state.pipeline.shutdown()
            logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        debug=testing,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(outbound.router)
    app.include_router(analytics.router)
    return app


app = create_app()
