"""Models for the projects file."""

from __future__ import annotations

from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..constants import (
    DEFAULT_STATUS_CONTEXT,
    DEFAULT_WEBHOOK_PATH,
    DEFAULT_WEBHOOK_PORT,
)
from ..exceptions import ProjectsConfigError

__all__ = [
    "CloudflareConfig",
    "CloudflareProfile",
    "GitHubConfig",
    "IngressTarget",
    "ProjectSpec",
    "ProjectsConfig",
    "WebhookConfig",
]


class _FrozenModel(BaseModel):
    """Base for projects file models.

    Every model is frozen so that a loaded snapshot can be shared between
    concurrent requests and deploys without anyone changing it underneath
    them.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, frozen=True, populate_by_name=True
    )


class WebhookConfig(_FrozenModel):
    """Where the webhook listens and how it authenticates events."""

    port: int = Field(
        DEFAULT_WEBHOOK_PORT,
        title="Listening port",
        examples=[4000],
    )

    path: str = Field(
        DEFAULT_WEBHOOK_PATH,
        title="Webhook path",
        description="GitHub must be configured to POST events to this path.",
        examples=["/github"],
    )

    secret: str = Field(
        "",
        title="Webhook secret",
        description=(
            "Shared secret used to sign events. If empty, signatures are not"
            " checked at all."
        ),
    )


class GitHubConfig(_FrozenModel):
    """Credentials and naming for commit statuses."""

    token: str | None = Field(
        None,
        title="GitHub token",
        description="Used if no token is set in the environment.",
    )

    tokens: dict[str, str] = Field(
        {},
        title="Scoped GitHub tokens",
        description=(
            "Tokens keyed by name. A project whose ``credentialsScope`` names"
            " one of these uses it in preference to ``token``."
        ),
    )

    token_file: Path | None = Field(
        None,
        title="GitHub token file",
        description=(
            "File holding a token, used if neither the environment nor this"
            " file provide one."
        ),
    )

    status_context: str = Field(
        DEFAULT_STATUS_CONTEXT,
        title="Commit status context prefix",
        description="The project name is appended after a slash.",
    )


class IngressTarget(_FrozenModel):
    """Public hostname published for one project through the tunnel."""

    enabled: bool = Field(False, title="Whether to publish this project")

    subdomain: str | None = Field(
        None,
        title="Subdomain",
        description="Prepended to the profile's root domain.",
        examples=["staging"],
    )

    local_port: int | None = Field(
        None, title="Local port of the deployed service", examples=[8080]
    )

    local_path: str = Field("/", title="Local path of the deployed service")

    protocol: str = Field("http", title="Local protocol")


class CloudflareProfile(_FrozenModel):
    """One Cloudflare tunnel and the routing table file it reads."""

    root_domain: str = Field(
        ..., title="Root domain", examples=["example.com"]
    )

    config_file: Path | None = Field(
        None,
        title="Tunnel configuration file",
        examples=["/etc/cloudflared/config.yml"],
    )

    tunnel_name: str | None = Field(None, title="Tunnel name")

    service_name: str | None = Field(
        None,
        title="systemd service",
        description="Restarted after the ingress rules change.",
        examples=["cloudflared"],
    )


class CloudflareConfig(_FrozenModel):
    """Cloudflare tunnel profiles."""

    profiles: dict[str, CloudflareProfile] = Field({}, title="Profiles")


class ProjectSpec(_FrozenModel):
    """One deployable project and branch."""

    name: str = Field(..., title="Project name", examples=["app-production"])

    repo: str = Field(
        ...,
        title="Repository",
        description=(
            "Full name of the GitHub repository, compared exactly and"
            " case-sensitively with the event's repository."
        ),
        examples=["org/app"],
        min_length=1,
    )

    branch: str | None = Field(
        None,
        title="Branch filter",
        description="If empty, every branch of the repository matches.",
        examples=["main"],
    )

    enabled: bool = Field(True, title="Whether pushes trigger deploys")

    work_dir: Path | None = Field(
        None,
        title="Working directory",
        description=(
            "Working directory of the deploy script. Relative paths are"
            " resolved against the projects file's ``rootDir``."
        ),
    )

    deploy_script: Path = Field(
        ...,
        title="Deploy executable",
        description=(
            "Executed directly, without a shell. Relative paths are resolved"
            " against the projects file's ``rootDir``."
        ),
        examples=["/opt/deploy/deploy.sh"],
    )

    deploy_args: list[str] = Field([], title="Deploy arguments")

    env: dict[str, str] = Field(
        {},
        title="Environment overrides",
        description="Added to the service's environment for the deploy.",
    )

    credentials_scope: str | None = Field(
        None,
        title="Credentials scope",
        description="Name of the entry of ``github.tokens`` to use.",
    )

    cloudflare_profile: str | None = Field(None, title="Cloudflare profile")

    cloudflare: IngressTarget | None = Field(None, title="Ingress target")


class ProjectsConfig(_FrozenModel):
    """Contents of the projects file."""

    webhook: WebhookConfig = Field(WebhookConfig(), title="Webhook")

    root_dir: Path | None = Field(
        None,
        title="Root directory",
        description=(
            "Base for relative paths. Defaults to the directory holding the"
            " projects file."
        ),
    )

    github: GitHubConfig = Field(GitHubConfig(), title="GitHub")

    cloudflare: CloudflareConfig = Field(
        CloudflareConfig(), title="Cloudflare"
    )

    projects: list[ProjectSpec] = Field([], title="Projects")

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a snapshot from a projects file.

        Relative ``workDir`` and ``deployScript`` paths are resolved here, so
        the rest of the service only ever sees absolute paths.

        Parameters
        ----------
        path
            Path to the projects file in JSON.

        Returns
        -------
        ProjectsConfig
            The corresponding snapshot.

        Raises
        ------
        ProjectsConfigError
            Raised if the file cannot be read or is not a valid projects file.
        """
        try:
            config = cls.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            raise ProjectsConfigError(path, e) from e
        root = (path.parent / (config.root_dir or ".")).absolute()
        projects = [
            p.model_copy(
                update={
                    "work_dir": root / (p.work_dir or "."),
                    "deploy_script": root / p.deploy_script,
                }
            )
            for p in config.projects
        ]
        return config.model_copy(
            update={"root_dir": root, "projects": projects}
        )
