"""Configuration definition."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import AliasChoices, Field, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from safir.logging import LogLevel, Profile

from .constants import DEFAULT_PROJECTS_PATH

__all__ = ["Configuration"]


class Configuration(BaseSettings):
    """Process settings for pushdeploy, read from the environment.

    The list of projects, the webhook secret and the other settings that
    operators edit while the service runs live in the projects file instead
    (see `~pushdeploy.models.projects.ProjectsConfig`).
    """

    model_config = SettingsConfigDict(
        env_prefix="PUSHDEPLOY_", extra="ignore", populate_by_name=True
    )

    name: str = Field(
        "pushdeploy",
        title="Name of application",
        description="Reported by the health route.",
    )

    projects_path: Path = Field(
        DEFAULT_PROJECTS_PATH,
        title="Path to the projects file",
        description=(
            "JSON document with the webhook settings and the list of"
            " projects to deploy. It is reread on every push event, so it"
            " can be edited without restarting the service."
        ),
        examples=["/etc/pushdeploy/projects.json"],
    )

    profile: Profile = Field(
        Profile.development,
        title="Application logging profile",
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Log level of the application's logger",
    )

    github_token: SecretStr | None = Field(
        None,
        title="GitHub token",
        description=(
            "Token used to post commit statuses. Takes precedence over any"
            " token in the projects file or in a token file."
        ),
        validation_alias=AliasChoices(
            "PUSHDEPLOY_GITHUB_TOKEN", "GITHUB_TOKEN"
        ),
    )

    github_token_file: Path | None = Field(
        None,
        title="GitHub token file",
        description=(
            "File holding a GitHub token, used when neither the environment"
            " nor the projects file provide one."
        ),
        examples=["/etc/pushdeploy/github-token"],
    )

    github_api_url: HttpUrl = Field(
        HttpUrl("https://api.github.com"),
        title="GitHub API base URL",
        description="Change this for GitHub Enterprise installations.",
    )

    slack_alerts: bool = Field(
        False,
        title="Enable Slack alerts",
        description=(
            "Whether to post failed deploys and uncaught exceptions to Slack."
            " If true, ``alert_hook`` must also be set."
        ),
    )

    alert_hook: HttpUrl | None = Field(
        None,
        title="Slack webhook URL used for sending alerts",
        description=(
            "An https URL, which should be considered secret. If not set or"
            " set to `None`, this feature will be disabled."
        ),
        examples=["https://slack.example.com/ADFAW1452DAF41/"],
    )

    shutdown_timeout: timedelta = Field(
        timedelta(minutes=5),
        title="Shutdown grace period",
        description=(
            "How long to wait on shutdown for running deploys to finish"
            " being supervised before giving up on them. The deploy"
            " processes themselves are never killed."
        ),
    )
