"""The main application factory for the pushdeploy service."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import metadata, version

import structlog
from fastapi import FastAPI
from safir.dependencies.http_client import http_client_dependency
from safir.fastapi import ClientRequestError, client_request_error_handler
from safir.logging import Profile, configure_logging, configure_uvicorn_logging
from safir.middleware.x_forwarded import XForwardedMiddleware
from safir.slack.webhook import SlackRouteErrorHandler

from .dependencies.config import config_dependency, projects_dependency
from .dependencies.context import context_dependency
from .handlers.internal import internal_router
from .handlers.webhook import create_webhook_router

__all__ = ["create_app", "lifespan"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Set up and tear down the the base application."""
    await context_dependency.initialize()

    yield

    await context_dependency.aclose()
    await http_client_dependency.aclose()


def create_app() -> FastAPI:
    """Create the FastAPI application.

    This is in a function rather than using a global variable (as is more
    typical for FastAPI) because the webhook path comes from the projects
    file and we therefore want to recreate the application between tests.

    Raises
    ------
    ProjectsConfigError
        Raised if the projects file cannot be loaded. The service cannot run
        without one.
    """
    config = config_dependency.config

    # Configure logging.
    configure_logging(
        name="pushdeploy",
        profile=config.profile,
        log_level=config.log_level,
    )
    if config.profile == Profile.production:
        configure_uvicorn_logging(config.log_level)

    # Enable Slack alerting for uncaught exceptions.
    if config.slack_alerts and config.alert_hook:
        logger = structlog.get_logger("pushdeploy")
        SlackRouteErrorHandler.initialize(
            str(config.alert_hook), "pushdeploy", logger
        )
        logger.debug("Initialized Slack webhook")

    webhook_path = projects_dependency.snapshot.webhook.path

    app = FastAPI(
        title="pushdeploy",
        description=metadata("pushdeploy")["Summary"],
        version=version("pushdeploy"),
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # Attach the routers.
    app.include_router(internal_router)
    app.include_router(create_webhook_router(webhook_path))

    # Add middleware.
    app.add_middleware(XForwardedMiddleware)

    # Enable the generic exception handler for client errors.
    app.exception_handler(ClientRequestError)(client_request_error_handler)

    return app

