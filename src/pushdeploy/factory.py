"""Component factory and process-wide status for pushdeploy."""

from __future__ import annotations

import structlog
from httpx import AsyncClient
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from .config import Configuration
from .dependencies.config import projects_dependency
from .services.dispatcher import EventDispatcher
from .services.supervisor import DeploySupervisor
from .storage.github import StatusReporter

__all__ = ["Factory", "ProcessContext"]


class ProcessContext:
    """Per-process application context.

    This object caches all of the per-process singletons that can be reused
    for every request.

    Parameters
    ----------
    http_client
        Shared HTTP client.
    config
        Process settings.

    Attributes
    ----------
    http_client
        Shared HTTP client.
    reporter
        Commit status reporter.
    supervisor
        Supervisor of all running deploys.
    """

    def __init__(
        self, http_client: AsyncClient, config: Configuration
    ) -> None:
        self.http_client = http_client
        self.config = config
        self.logger = structlog.get_logger("pushdeploy")
        self.reporter = StatusReporter(http_client, config, self.logger)
        self.supervisor = DeploySupervisor(
            reporter=self.reporter,
            logger=self.logger,
            slack=Factory(self).create_slack_webhook_client(),
        )

    async def aclose(self) -> None:
        """Clean up a process context.

        Called before shutdown to free resources. Waits for running deploys
        to finish being supervised, up to the configured timeout.
        """
        await self.supervisor.aclose(self.config.shutdown_timeout)


class Factory:
    """Component factory for pushdeploy.

    Uses the contents of a `ProcessContext` to construct the components of an
    application on demand.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to give to the created components.
    """

    def __init__(
        self, context: ProcessContext, logger: BoundLogger | None = None
    ) -> None:
        self._context = context
        self._logger = logger if logger else context.logger
        self._config = context.config

    def create_slack_webhook_client(self) -> SlackWebhookClient | None:
        """Create a Slack webhook client if configured for Slack alerting.

        Returns
        -------
        SlackWebhookClient or None
            Newly-created Slack client, or `None` if Slack alerting is not
            configured.
        """
        if self._config.slack_alerts and self._config.alert_hook:
            return SlackWebhookClient(
                str(self._config.alert_hook), "pushdeploy", self._logger
            )
        return None

    def create_event_dispatcher(self) -> EventDispatcher:
        """Create a dispatcher for one webhook delivery."""
        return EventDispatcher(
            projects=projects_dependency,
            supervisor=self._context.supervisor,
            logger=self._logger,
        )
