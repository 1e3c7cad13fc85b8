"""GitHub webhook handler."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import PlainTextResponse
from safir.slack.webhook import SlackRouteErrorHandler

from ..dependencies.context import RequestContext, context_dependency
from ..exceptions import WebhookNotFoundError

__all__ = ["create_webhook_router"]


async def post_webhook(
    context: Annotated[RequestContext, Depends(context_dependency)],
    background_tasks: BackgroundTasks,
) -> PlainTextResponse:
    """Process a GitHub webhook delivery.

    Matched deploys are started only after the response has been sent, so
    GitHub never waits for a deploy.
    """
    body = await context.request.body()
    dispatcher = context.factory.create_event_dispatcher()
    plan = await dispatcher.route(context.request.headers, body)
    if plan.projects:
        background_tasks.add_task(dispatcher.dispatch, plan)
    return PlainTextResponse(plan.message)


async def reject_webhook() -> None:
    """Answer anything but a POST to the webhook path with a 404."""
    raise WebhookNotFoundError


def create_webhook_router(path: str) -> APIRouter:
    """Create the router for the webhook.

    The path comes from the projects file, so it is only known once that has
    been loaded.

    Parameters
    ----------
    path
        Path GitHub posts events to.

    Returns
    -------
    APIRouter
        Router to attach to the application.
    """
    router = APIRouter(route_class=SlackRouteErrorHandler)
    router.add_api_route(
        path,
        post_webhook,
        methods=["POST"],
        summary="GitHub webhook",
        description=(
            "Receives push events from GitHub and starts the deploys of"
            " matching projects."
        ),
        response_class=PlainTextResponse,
    )
    router.add_api_route(
        path,
        reject_webhook,
        methods=["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    return router
