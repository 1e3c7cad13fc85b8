"""Turn webhook deliveries into deploys."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from gidgethub.sansio import Event
from structlog.stdlib import BoundLogger

from ..dependencies.config import ProjectsDependency
from ..exceptions import InvalidPayloadError, InvalidSignatureError
from ..models.event import PushEvent
from ..models.projects import ProjectsConfig, ProjectSpec
from .matcher import match_projects
from .supervisor import DeployRun, DeploySupervisor
from .verifier import verify_signature

__all__ = ["Dispatch", "EventDispatcher"]


@dataclass(frozen=True, slots=True)
class Dispatch:
    """Result of routing one webhook delivery."""

    message: str
    """Body of the HTTP response."""

    event: PushEvent | None = None
    """Decoded event, if it got that far."""

    projects: list[ProjectSpec] = field(default_factory=list)
    """Projects to deploy, in projects file order."""

    snapshot: ProjectsConfig | None = None
    """Projects file snapshot the projects were matched against."""


class EventDispatcher:
    """Authenticate, decode and route GitHub webhook deliveries.

    Routing is split in two so that the HTTP response can be sent before any
    deploy is started: `route` runs synchronously while the request is
    handled, and `dispatch` is run afterwards as a background task.

    Parameters
    ----------
    projects
        Holder of the projects file snapshot.
    supervisor
        Starts and watches deploy processes.
    logger
        Request logger.
    """

    def __init__(
        self,
        projects: ProjectsDependency,
        supervisor: DeploySupervisor,
        logger: BoundLogger,
    ) -> None:
        self._projects = projects
        self._supervisor = supervisor
        self._logger = logger

    async def route(
        self, headers: Mapping[str, str], body: bytes
    ) -> Dispatch:
        """Decide what to do with a webhook delivery.

        The projects file is reread in a worker thread before anything else,
        so each delivery sees the current configuration.

        Parameters
        ----------
        headers
            Request headers. Lookups must be case-insensitive.
        body
            Complete raw request body.

        Returns
        -------
        Dispatch
            Response message and, for matched push events, the deploys to
            start.

        Raises
        ------
        InvalidSignatureError
            Raised if the signature does not match the body.
        InvalidPayloadError
            Raised if the body is not a JSON object.
        """
        snapshot = await asyncio.to_thread(self._projects.reload)
        kind = headers.get("x-github-event", "")
        delivery_id = headers.get("x-github-delivery")
        self._logger = self._logger.bind(
            github_event=kind, github_delivery=delivery_id
        )

        secret = snapshot.webhook.secret
        if not secret:
            self._logger.warning(
                "No webhook secret configured, not checking signature"
            )
        signature = headers.get("x-hub-signature-256")
        if not verify_signature(secret, body, signature):
            self._logger.warning("Webhook signature verification failed")
            raise InvalidSignatureError

        try:
            data = json.loads(body)
        except ValueError as e:
            self._logger.warning("Invalid JSON in webhook", error=str(e))
            raise InvalidPayloadError(str(e)) from e
        if not isinstance(data, dict):
            self._logger.warning("Webhook payload is not a JSON object")
            raise InvalidPayloadError("payload is not an object")
        event = PushEvent.from_event(
            Event(data, event=kind, delivery_id=delivery_id or "")
        )
        self._logger = self._logger.bind(
            repo=event.repository, ref=event.ref
        )
        self._logger.debug("Received GitHub webhook")

        if event.kind == "ping":
            self._logger.info("Answered ping")
            return Dispatch("pong", event)
        if event.kind != "push":
            self._logger.info("Ignoring non-push event")
            return Dispatch("ignored", event)
        if not event.repository or not event.branch:
            self._logger.info("Ignoring push without repository or ref")
            return Dispatch("missing repository or ref", event)

        projects = match_projects(snapshot, event)
        if not projects:
            self._logger.info("No projects match push")
            return Dispatch("no matching projects", event)
        self._logger.info(
            "Matched projects", projects=[p.name for p in projects]
        )
        return Dispatch(
            f"ok, matched={len(projects)}", event, projects, snapshot
        )

    async def dispatch(self, plan: Dispatch) -> list[DeployRun]:
        """Start the deploys chosen by `route`.

        Parameters
        ----------
        plan
            Result of `route`.

        Returns
        -------
        list of DeployRun
            One run per matched project, in the same order.
        """
        if not plan.event or not plan.snapshot or not plan.projects:
            return []
        return await self._supervisor.start_all(
            plan.projects, plan.event, plan.snapshot
        )
