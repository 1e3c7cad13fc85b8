"""Keep Cloudflare tunnel ingress rules in sync with the projects file."""

from __future__ import annotations

import os

import yaml
from structlog.stdlib import BoundLogger

from ..constants import INGRESS_FALLBACK_SERVICE
from ..exceptions import SubprocessError, UnknownProfileError
from ..models.ingress import IngressPlan, IngressRule
from ..models.projects import ProjectsConfig
from ..storage.process import Process

__all__ = ["IngressSyncer", "build_ingress"]


def build_ingress(
    config: ProjectsConfig,
    profile_name: str,
    logger: BoundLogger | None = None,
) -> IngressPlan:
    """Generate the ingress rules for one Cloudflare profile.

    Parameters
    ----------
    config
        Snapshot of the projects file.
    profile_name
        Name of the profile under ``cloudflare.profiles``.
    logger
        Used to warn about projects whose ingress target is incomplete.

    Returns
    -------
    IngressPlan
        One rule per enabled ingress target of the profile's projects, in
        projects file order, followed by the catch-all rule.

    Raises
    ------
    UnknownProfileError
        Raised if the profile does not exist.
    """
    profile = config.cloudflare.profiles.get(profile_name)
    if profile is None:
        raise UnknownProfileError(profile_name)

    rules = []
    for project in config.projects:
        target = project.cloudflare
        if project.cloudflare_profile != profile_name or not target:
            continue
        if not target.enabled:
            continue
        if not target.subdomain or not target.local_port:
            if logger:
                logger.warning(
                    "Skipping ingress without subdomain or local port",
                    project=project.name,
                )
            continue
        rules.append(
            IngressRule(
                hostname=f"{target.subdomain}.{profile.root_domain}",
                service=(
                    f"{target.protocol}://localhost:{target.local_port}"
                    f"{target.local_path}"
                ),
            )
        )
    rules.append(IngressRule(service=INGRESS_FALLBACK_SERVICE))
    return IngressPlan(rules=rules)


class IngressSyncer:
    """Write ingress rules into cloudflared configuration files.

    Only the ``ingress`` key of each configuration file is replaced; the
    tunnel ID, credentials file and any other settings are preserved. New
    hostnames get a DNS route, and the tunnel service is restarted if its
    rules changed.

    Parameters
    ----------
    config
        Snapshot of the projects file.
    logger
        Logger to use.
    process
        Runs the ``cloudflared`` and ``systemctl`` commands.
    """

    def __init__(
        self,
        config: ProjectsConfig,
        logger: BoundLogger,
        process: Process | None = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._process = process or Process(logger)

    async def sync_all(self) -> dict[str, IngressPlan | None]:
        """Synchronize every profile, in projects file order."""
        return {
            name: await self.sync_profile(name)
            for name in self._config.cloudflare.profiles
        }

    async def sync_profile(self, name: str) -> IngressPlan | None:
        """Synchronize the configuration file of one profile.

        Parameters
        ----------
        name
            Name of the profile.

        Returns
        -------
        IngressPlan or None
            Rules written, or `None` if the profile could not be synchronized.

        Raises
        ------
        UnknownProfileError
            Raised if the profile does not exist.
        """
        logger = self._logger.bind(profile=name)
        plan = build_ingress(self._config, name, logger)
        profile = self._config.cloudflare.profiles[name]
        if not profile.config_file or not profile.tunnel_name:
            logger.error("Profile has no configFile or tunnelName")
            return None
        path = profile.config_file

        data = {}
        if path.exists():
            try:
                data = yaml.safe_load(path.read_text()) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(
                    "Cannot read tunnel configuration",
                    path=str(path),
                    error=str(e),
                )
                return None
        if not isinstance(data, dict):
            logger.error(
                "Tunnel configuration is not a mapping", path=str(path)
            )
            return None

        old_rules = data.get("ingress") or []
        old_hosts = {
            rule.get("hostname")
            for rule in old_rules
            if isinstance(rule, dict)
        }
        new_rules = plan.to_yaml_data()
        changed = old_rules != new_rules
        data["ingress"] = new_rules

        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            tmp_path.write_text(yaml.safe_dump(data, sort_keys=False))
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(
                "Cannot write tunnel configuration",
                path=str(path),
                error=str(e),
            )
            return None
        logger.info("Updated ingress rules", path=str(path), changed=changed)

        for hostname in plan.hostnames:
            if hostname in old_hosts:
                continue
            await self._run(
                logger,
                "cloudflared",
                "tunnel",
                "route",
                "dns",
                profile.tunnel_name,
                hostname,
            )
        if changed and profile.service_name:
            await self._run(
                logger, "systemctl", "restart", profile.service_name
            )
        return plan

    async def _run(self, logger: BoundLogger, cmd: str, *args: str) -> None:
        """Run a command, logging rather than raising on failure."""
        logger.info("Running command", command=[cmd, *args])
        try:
            await self._process.exec(cmd, *args)
        except SubprocessError as e:
            logger.error("Command failed", error=str(e))
