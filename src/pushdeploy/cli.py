"""Command-line interface for pushdeploy."""

from __future__ import annotations

from pathlib import Path

import click
import structlog
import uvicorn
from safir.asyncio import run_with_asyncio
from safir.logging import configure_logging

from .dependencies.config import config_dependency, projects_dependency
from .exceptions import ProjectsConfigError, UnknownProfileError
from .services.ingress import IngressSyncer


def _load_projects(projects_file: Path | None) -> None:
    try:
        if projects_file:
            projects_dependency.set_path(projects_file)
        else:
            projects_dependency.reload()
    except ProjectsConfigError as e:
        raise click.ClickException(str(e)) from e


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Deploy projects when GitHub reports a push."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    # The help command implementation is taken from
    # https://www.burgundywall.com/post/having-click-help-subcommand
    if topic:
        if topic in main.commands:
            click.echo(main.commands[topic].get_help(ctx))
        else:
            raise click.UsageError(f"Unknown help topic {topic}", ctx)
    else:
        if not ctx.parent:
            raise RuntimeError("help somehow called without parent or topic")
        click.echo(ctx.parent.get_help())


@main.command()
@click.option(
    "-f",
    "--projects-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="PUSHDEPLOY_PROJECTS_PATH",
    help="JSON file listing the projects to deploy",
)
@click.option(
    "--host",
    default="0.0.0.0",
    envvar="PUSHDEPLOY_HOST",
    show_default=True,
    help="Address to listen on",
)
@click.option(
    "-p",
    "--port",
    type=int,
    default=None,
    envvar="PUSHDEPLOY_PORT",
    help="Port to listen on [default: webhook.port from the projects file]",
)
def run(projects_file: Path | None, host: str, port: int | None) -> None:
    """Run the webhook server."""
    _load_projects(projects_file)
    if port is None:
        port = projects_dependency.snapshot.webhook.port
    uvicorn.run(
        "pushdeploy.main:create_app",
        factory=True,
        host=host,
        port=port,
        proxy_headers=False,
    )


@main.command("sync-ingress")
@click.option(
    "-f",
    "--projects-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="PUSHDEPLOY_PROJECTS_PATH",
    help="JSON file listing the projects to publish",
)
@click.option(
    "--profile",
    default=None,
    help="Only synchronize this Cloudflare profile",
)
@run_with_asyncio
async def sync_ingress(
    projects_file: Path | None, profile: str | None
) -> None:
    """Update cloudflared ingress rules from the projects file."""
    config = config_dependency.config
    configure_logging(
        name="pushdeploy", profile=config.profile, log_level=config.log_level
    )
    logger = structlog.get_logger("pushdeploy")
    _load_projects(projects_file)
    snapshot = projects_dependency.snapshot
    if not snapshot.cloudflare.profiles:
        raise click.ClickException("No cloudflare.profiles in projects file")

    syncer = IngressSyncer(snapshot, logger)
    if profile:
        try:
            results = {profile: await syncer.sync_profile(profile)}
        except UnknownProfileError as e:
            raise click.ClickException(str(e)) from e
    else:
        results = await syncer.sync_all()

    failed = [name for name, plan in results.items() if plan is None]
    if failed:
        raise click.ClickException(
            "Failed to synchronize profiles: " + ", ".join(failed)
        )
