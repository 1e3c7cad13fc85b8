"""Tools for reporting deploy outcomes through the GitHub REST API."""

from __future__ import annotations

import asyncio
from enum import StrEnum

from gidgethub import GitHubException
from gidgethub.httpx import GitHubAPI
from httpx import AsyncClient, HTTPError, InvalidURL
from pydantic import BaseModel, Field
from structlog.stdlib import BoundLogger

from ..config import Configuration
from ..constants import GITHUB_STATUS_DESCRIPTION_LIMIT
from ..models.deploy import DeployOutcome
from ..models.projects import ProjectsConfig

__all__ = ["GitHubStatusState", "StatusReporter", "resolve_github_token"]


class GitHubStatusState(StrEnum):
    """States of a GitHub commit status."""

    pending = "pending"
    success = "success"
    failure = "failure"
    error = "error"

    @classmethod
    def from_outcome(cls, outcome: DeployOutcome) -> GitHubStatusState:
        return _OUTCOME_STATES[outcome]


_OUTCOME_STATES = {
    DeployOutcome.pending: GitHubStatusState.pending,
    DeployOutcome.success: GitHubStatusState.success,
    DeployOutcome.failure: GitHubStatusState.failure,
    DeployOutcome.spawn_error: GitHubStatusState.error,
}


class _StatusRequest(BaseModel):
    state: GitHubStatusState = Field()
    description: str = Field(max_length=GITHUB_STATUS_DESCRIPTION_LIMIT)
    context: str = Field()


def resolve_github_token(
    config: Configuration,
    projects: ProjectsConfig,
    scope: str | None = None,
    logger: BoundLogger | None = None,
) -> str | None:
    """Find the token to use for commit statuses.

    Sources are tried in order: the environment, the projects file (the
    scoped token first if the project names a scope, then the default
    token), and finally a token file named by the projects file or the
    environment.

    Parameters
    ----------
    config
        Process settings.
    projects
        Snapshot of the projects file.
    scope
        The project's ``credentialsScope``, if any.
    logger
        Used to warn about an unreadable token file.

    Returns
    -------
    str or None
        The token, or `None` if no source provides one.
    """
    if config.github_token:
        return config.github_token.get_secret_value()
    if scope and projects.github.tokens.get(scope):
        return projects.github.tokens[scope]
    if projects.github.token:
        return projects.github.token
    path = projects.github.token_file or config.github_token_file
    if path is None:
        return None
    try:
        token = path.read_text().strip()
    except OSError as e:
        if logger:
            logger.warning(
                "Cannot read GitHub token file", path=str(path), error=str(e)
            )
        return None
    return token or None


class StatusReporter:
    """Post deploy outcomes to GitHub as commit statuses.

    Reporting is best-effort: if no token is available nothing is sent, and
    errors talking to GitHub are logged and otherwise ignored so that they
    never affect the deploy they describe.

    Parameters
    ----------
    http_client
        Shared HTTP client.
    config
        Process settings.
    logger
        Logger to use.
    """

    def __init__(
        self,
        http_client: AsyncClient,
        config: Configuration,
        logger: BoundLogger,
    ) -> None:
        self._http_client = http_client
        self._config = config
        self._base_url = str(config.github_api_url).rstrip("/")
        self._logger = logger

    async def report(
        self,
        *,
        repo: str,
        sha: str,
        outcome: DeployOutcome,
        description: str,
        context: str,
        projects: ProjectsConfig,
        scope: str | None = None,
    ) -> None:
        """Set the status of a commit.

        Parameters
        ----------
        repo
            Full name of the repository.
        sha
            Commit to annotate.
        outcome
            Deploy outcome, mapped to a GitHub status state.
        description
            Short human-readable description, truncated to what GitHub
            accepts.
        context
            Status context, distinguishing this status from others on the
            same commit.
        projects
            Projects file snapshot, used to find a token.
        scope
            Credentials scope of the project, if any.
        """
        logger = self._logger.bind(
            repo=repo, sha=sha, outcome=outcome.value, context=context
        )
        token = await asyncio.to_thread(
            resolve_github_token, self._config, projects, scope, logger
        )
        if token is None:
            logger.info("No GitHub token available, not reporting status")
            return

        if len(description) > GITHUB_STATUS_DESCRIPTION_LIMIT:
            description = description[: GITHUB_STATUS_DESCRIPTION_LIMIT - 3]
            description += "..."
        data = _StatusRequest(
            state=GitHubStatusState.from_outcome(outcome),
            description=description,
            context=context,
        ).model_dump(mode="json")

        client = GitHubAPI(
            self._http_client,
            "pushdeploy",
            oauth_token=token,
            base_url=self._base_url,
        )
        try:
            await client.post(f"/repos/{repo}/statuses/{sha}", data=data)
        except (GitHubException, HTTPError, InvalidURL) as e:
            logger.warning(
                "Failed to report commit status",
                error=f"{type(e).__name__}: {e!s}",
            )
            return
        logger.debug("Reported commit status", state=data["state"])
