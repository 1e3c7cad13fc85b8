"""Launch and supervise deploy processes."""

from __future__ import annotations

import asyncio
import os
from asyncio import StreamReader
from asyncio.subprocess import Process
from datetime import timedelta
from shlex import join

from aiojobs import Scheduler
from safir.datetime import current_datetime
from safir.slack.blockkit import SlackMessage, SlackTextField
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from ..constants import DEPLOY_OUTPUT_LINE_LIMIT
from ..models.deploy import DeployOutcome, DeployRunSummary
from ..models.event import PushEvent
from ..models.projects import ProjectsConfig, ProjectSpec
from ..storage.github import StatusReporter

__all__ = ["DeployRun", "DeploySupervisor"]


class DeployRun:
    """One deploy process started for one project and push event.

    Parameters
    ----------
    project
        Project being deployed.
    event
        Push event that triggered the deploy.
    """

    def __init__(self, project: ProjectSpec, event: PushEvent) -> None:
        self.project = project
        self.event = event
        self.started_at = current_datetime(microseconds=True)
        self.outcome = DeployOutcome.pending
        self.exit_code: int | None = None
        self.error: str | None = None
        self.pid: int | None = None
        self._finished = asyncio.Event()

    def __str__(self) -> str:
        return f"{self.project.name}@{self.event.branch}"

    @property
    def command(self) -> list[str]:
        return [str(self.project.deploy_script), *self.project.deploy_args]

    @property
    def description(self) -> str:
        """Human-readable description of the current outcome."""
        name = self.project.name
        match self.outcome:
            case DeployOutcome.pending:
                return f"Deploy of {name} is running"
            case DeployOutcome.success:
                return f"Deploy of {name} succeeded"
            case DeployOutcome.failure:
                code = self.exit_code
                return f"Deploy of {name} failed with exit code {code}"
            case DeployOutcome.spawn_error:
                return f"Deploy of {name} could not start: {self.error}"

    def finish(self, exit_code: int) -> None:
        """Record the exit code of the deploy process."""
        self.exit_code = exit_code
        if exit_code == 0:
            self.outcome = DeployOutcome.success
        else:
            self.outcome = DeployOutcome.failure

    def fail_to_spawn(self, error: str) -> None:
        """Record that the deploy process could not be started."""
        self.error = error
        self.outcome = DeployOutcome.spawn_error

    def mark_done(self) -> None:
        self._finished.set()

    async def wait(self) -> DeployOutcome:
        """Wait until the outcome has been reported and return it."""
        await self._finished.wait()
        return self.outcome

    def summarize(self) -> DeployRunSummary:
        return DeployRunSummary(
            project=self.project.name,
            repository=self.event.repository,
            branch=self.event.branch,
            sha=self.event.sha,
            started_at=self.started_at,
            outcome=self.outcome,
            exit_code=self.exit_code,
        )


class DeploySupervisor:
    """Start deploy processes and watch them until they exit.

    Every deploy is independent: there is no limit on how many run at once,
    no ordering between them, no timeout and no retry. Each run gets its own
    background job that streams the process output to the log, waits for
    the process to exit, and reports the outcome.

    Parameters
    ----------
    reporter
        Used to post commit statuses.
    logger
        Logger to use.
    slack
        If given, failed deploys are also posted to Slack.
    """

    def __init__(
        self,
        *,
        reporter: StatusReporter,
        logger: BoundLogger,
        slack: SlackWebhookClient | None = None,
    ) -> None:
        self._reporter = reporter
        self._logger = logger
        self._slack = slack
        self._scheduler = Scheduler(limit=None)
        self._runs: set[DeployRun] = set()

    @property
    def runs(self) -> list[DeployRun]:
        """Runs still being supervised, oldest first."""
        return sorted(self._runs, key=lambda r: r.started_at)

    async def start(
        self, project: ProjectSpec, event: PushEvent, projects: ProjectsConfig
    ) -> DeployRun:
        """Launch the deploy process for one project.

        Returns as soon as the process has been started, or immediately with
        a ``spawn_error`` outcome if it could not be.

        Parameters
        ----------
        project
            Project to deploy.
        event
            Push event that triggered the deploy.
        projects
            Snapshot of the projects file the project came from.

        Returns
        -------
        DeployRun
            The new run. Use `DeployRun.wait` to wait for its outcome.
        """
        run = DeployRun(project, event)
        logger = self._logger.bind(
            project=project.name,
            repo=event.repository,
            branch=event.branch,
            sha=event.sha,
        )
        env = {
            **os.environ,
            "DEPLOY_PROJECT": project.name,
            "DEPLOY_REPO": event.repository,
            "DEPLOY_BRANCH": event.branch,
            "DEPLOY_REF": event.ref,
            "DEPLOY_SHA": event.sha or "",
            **project.env,
        }
        logger.info(
            "Starting deploy",
            command=join(run.command),
            cwd=str(project.work_dir),
        )
        self._runs.add(run)
        try:
            process = await asyncio.create_subprocess_exec(
                *run.command,
                cwd=project.work_dir,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=DEPLOY_OUTPUT_LINE_LIMIT,
            )
        except OSError as e:
            run.fail_to_spawn(f"{type(e).__name__}: {e!s}")
            logger.error("Failed to start deploy", error=run.error)
            await self._scheduler.spawn(self._conclude(run, projects, logger))
            return run

        run.pid = process.pid
        logger.info("Deploy started", pid=process.pid)
        await self._scheduler.spawn(
            self._supervise(run, process, projects, logger)
        )
        return run

    async def start_all(
        self,
        projects: list[ProjectSpec],
        event: PushEvent,
        snapshot: ProjectsConfig,
    ) -> list[DeployRun]:
        """Launch deploys for several projects, in order."""
        return [
            await self.start(project, event, snapshot) for project in projects
        ]

    async def aclose(self, timeout: timedelta | None = None) -> None:
        """Stop accepting deploys and wait for running ones to be reported.

        Deploy processes are never killed. If the timeout expires, their
        supervision is abandoned and their outcome is never reported.
        """
        if self._runs:
            self._logger.info(
                "Waiting for running deploys", runs=[str(r) for r in self.runs]
            )
        seconds = timeout.total_seconds() if timeout else None
        await self._scheduler.wait_and_close(seconds)

    async def _supervise(
        self,
        run: DeployRun,
        process: Process,
        projects: ProjectsConfig,
        logger: BoundLogger,
    ) -> None:
        """Wait for the output streams to close and the process to exit."""
        pending = asyncio.create_task(self._report(run, projects, logger))
        try:
            if process.stdout is None or process.stderr is None:
                raise RuntimeError("Deploy process output is not piped")
            await asyncio.gather(
                self._stream(process.stdout, "stdout", logger),
                self._stream(process.stderr, "stderr", logger),
            )
            run.finish(await process.wait())
        finally:
            try:
                await pending
            except Exception:
                logger.exception("Failed to report running deploy")
            await self._conclude(run, projects, logger)

    async def _stream(
        self, stream: StreamReader, name: str, logger: BoundLogger
    ) -> None:
        """Log each line of a process output stream as it arrives."""
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                logger.warning("Discarded overlong output line", stream=name)
                continue
            if not raw:
                break
            line = raw.decode(errors="replace").rstrip("\r\n")
            logger.info("Deploy output", stream=name, line=line)

    async def _conclude(
        self, run: DeployRun, projects: ProjectsConfig, logger: BoundLogger
    ) -> None:
        """Report the terminal outcome of a run and forget about it."""
        try:
            if run.outcome == DeployOutcome.success:
                logger.info("Deploy succeeded", exit_code=run.exit_code)
            elif run.outcome == DeployOutcome.failure:
                logger.warning("Deploy failed", exit_code=run.exit_code)
            try:
                await self._report(run, projects, logger)
            except Exception:
                logger.exception("Failed to report deploy outcome")
            if run.outcome != DeployOutcome.success:
                await self._alert(run)
        finally:
            self._runs.discard(run)
            run.mark_done()

    async def _report(
        self, run: DeployRun, projects: ProjectsConfig, logger: BoundLogger
    ) -> None:
        if not run.event.sha:
            logger.debug("No commit SHA in event, not reporting status")
            return
        await self._reporter.report(
            repo=run.event.repository,
            sha=run.event.sha,
            outcome=run.outcome,
            description=run.description,
            context=f"{projects.github.status_context}/{run.project.name}",
            projects=projects,
            scope=run.project.credentials_scope,
        )

    async def _alert(self, run: DeployRun) -> None:
        if not self._slack:
            return
        fields = [
            SlackTextField(heading="Project", text=run.project.name),
            SlackTextField(heading="Repository", text=run.event.repository),
            SlackTextField(heading="Branch", text=run.event.branch),
        ]
        if run.event.sha:
            fields.append(SlackTextField(heading="Commit", text=run.event.sha))
        await self._slack.post(
            SlackMessage(message=run.description, fields=fields)
        )
