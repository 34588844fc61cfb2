"""
FastAPI application entry point.

Run with ``uvicorn surveybot.main:app``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from surveybot.components import BotComponents, build_components
from surveybot.config import Settings, get_settings
from surveybot.messaging.webhooks.router import router as webhooks_router
from surveybot.shared.exceptions import ConfigurationError
from surveybot.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


def validate_settings(settings: Settings) -> None:
    """Raise ConfigurationError when required variables are missing."""
    missing = settings.missing_required()
    if missing:
        logger.error(
            "Missing required environment variables",
            extra={"missing": missing},
        )
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            error_code="MISSING_ENV",
            details={"missing": missing},
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    components: BotComponents = app.state.components

    # Startup aborts rather than serving degraded traffic.
    if app.state.validate_settings:
        validate_settings(components.settings)

    logger.info("Application starting", extra={"app_name": components.settings.app_name})

    poller_task: asyncio.Task[None] | None = None
    if components.settings.queue_poller_enabled:
        if components.poller is None:
            logger.warning("Queue poller enabled but no queue configured; not starting it")
        else:
            poller_task = asyncio.create_task(
                components.poller.run_forever(components.settings.queue_poll_interval_seconds)
            )
            logger.info("Queue poller background task created")

    yield

    logger.info("Shutting down application")

    if poller_task is not None:
        poller_task.cancel()
        try:
            await poller_task
        except asyncio.CancelledError:
            pass
        logger.info("Queue poller stopped")

    await components.close()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    components: BotComponents | None = None,
    validate: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or (components.settings if components else get_settings())

    app = FastAPI(
        title="Survey Bot",
        description="Branching chat survey bot",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.components = components or build_components(settings)
    app.state.validate_settings = validate

    app.include_router(webhooks_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
