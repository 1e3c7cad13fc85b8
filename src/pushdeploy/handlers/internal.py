"""Internal HTTP handlers that serve relative to the root path, ``/``.

These handlers should be used for monitoring, health checks, internal status,
or other information that should not be exposed through the tunnel.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from safir.metadata import Metadata, get_metadata
from safir.slack.webhook import SlackRouteErrorHandler

from ..config import Configuration
from ..dependencies.config import config_dependency
from ..dependencies.context import context_dependency
from ..models.deploy import DeployRunSummary

internal_router = APIRouter(route_class=SlackRouteErrorHandler)
"""FastAPI router for all internal handlers."""

__all__ = ["internal_router"]


@internal_router.get(
    "/health",
    description=(
        "Return metadata about the running application. Can also be used as"
        " a health check."
    ),
    response_model_exclude_none=True,
    summary="Application metadata",
)
async def get_health(
    config: Annotated[Configuration, Depends(config_dependency)],
) -> Metadata:
    return get_metadata(
        package_name="pushdeploy", application_name=config.name
    )


@internal_router.get(
    "/deploys",
    description="Deploys that are still running or being reported.",
    summary="Running deploys",
)
async def get_deploys() -> list[DeployRunSummary]:
    supervisor = context_dependency.process_context.supervisor
    return [run.summarize() for run in supervisor.runs]
