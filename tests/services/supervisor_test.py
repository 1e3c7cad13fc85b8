"""Tests for launching and supervising deploy processes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
import respx
import structlog
from httpx import AsyncClient
from pytest_mock import MockerFixture
from safir.slack.webhook import SlackWebhookClient
from safir.testing.slack import MockSlackWebhook
from structlog.testing import capture_logs

from pushdeploy.dependencies.config import config_dependency
from pushdeploy.models.deploy import DeployOutcome
from pushdeploy.models.event import PushEvent
from pushdeploy.models.projects import ProjectsConfig, ProjectSpec
from pushdeploy.services.supervisor import DeploySupervisor
from pushdeploy.storage.github import StatusReporter

from ..support.constants import TEST_SHA
from ..support.github import mock_commit_statuses, status_requests


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[AsyncClient]:
    async with AsyncClient() as client:
        yield client


def make_supervisor(
    http_client: AsyncClient, slack: SlackWebhookClient | None = None
) -> DeploySupervisor:
    logger = structlog.get_logger("pushdeploy")
    config = config_dependency.config
    reporter = StatusReporter(http_client, config, logger)
    return DeploySupervisor(reporter=reporter, logger=logger, slack=slack)


def make_project(
    name: str = "app",
    script: str | Path = "/bin/true",
    *args: str,
    **kwargs: Any,
) -> ProjectSpec:
    return ProjectSpec(
        name=name,
        repo="org/app",
        branch="main",
        deploy_script=Path(script),
        deploy_args=list(args),
        work_dir=kwargs.pop("work_dir", Path("/")),
        **kwargs,
    )


def make_event(sha: str | None = None) -> PushEvent:
    return PushEvent(
        kind="push", repository="org/app", ref="refs/heads/main", sha=sha
    )


@pytest.mark.asyncio
async def test_success(http_client: AsyncClient) -> None:
    supervisor = make_supervisor(http_client)
    project = make_project()
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(), snapshot)
    assert run.pid
    assert run.command == ["/bin/true"]
    assert str(run) == "app@main"

    assert await run.wait() == DeployOutcome.success
    assert run.exit_code == 0
    assert run.description == "Deploy of app succeeded"
    assert supervisor.runs == []
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_failure(http_client: AsyncClient) -> None:
    supervisor = make_supervisor(http_client)
    project = make_project("app", "/bin/sh", "-c", "exit 7")
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(), snapshot)
    assert await run.wait() == DeployOutcome.failure
    assert run.exit_code == 7
    assert run.description == "Deploy of app failed with exit code 7"
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_spawn_error(http_client: AsyncClient, tmp_path: Path) -> None:
    supervisor = make_supervisor(http_client)
    missing = make_project("missing", tmp_path / "missing.sh")
    script = tmp_path / "deploy.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)
    not_executable = make_project("noexec", script)
    no_cwd = make_project("nocwd", work_dir=tmp_path / "nonexistent")
    snapshot = ProjectsConfig(projects=[missing, not_executable, no_cwd])

    for project in snapshot.projects:
        run = await supervisor.start(project, make_event(), snapshot)
        assert await run.wait() == DeployOutcome.spawn_error
        assert run.pid is None
        assert run.exit_code is None
        assert run.error
        assert run.description.startswith(
            f"Deploy of {project.name} could not start: "
        )
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_concurrent(http_client: AsyncClient, tmp_path: Path) -> None:
    supervisor = make_supervisor(http_client)
    flag = tmp_path / "flag"

    # The first deploy can only finish if the second one runs while it is
    # still waiting.
    waiter = make_project(
        "waiter",
        "/bin/sh",
        "-c",
        'while [ ! -f "$0" ]; do sleep 0.05; done',
        str(flag),
    )
    toucher = make_project("toucher", "/usr/bin/env", "touch", str(flag))
    snapshot = ProjectsConfig(projects=[waiter, toucher])

    runs = await supervisor.start_all(
        snapshot.projects, make_event(), snapshot
    )
    assert [r.project.name for r in runs] == ["waiter", "toucher"]
    outcomes = await asyncio.wait_for(
        asyncio.gather(*(r.wait() for r in runs)), timeout=10
    )
    assert outcomes == [DeployOutcome.success, DeployOutcome.success]
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_output(http_client: AsyncClient, tmp_path: Path) -> None:
    script = (
        'echo "$DEPLOY_PROJECT $DEPLOY_REPO $DEPLOY_BRANCH $DEPLOY_SHA"\n'
        'echo "$STAGE"\n'
        "pwd\n"
        "echo oops >&2\n"
    )
    project = make_project(
        "app",
        "/bin/sh",
        "-c",
        script,
        work_dir=tmp_path,
        env={"STAGE": "production"},
    )
    snapshot = ProjectsConfig(projects=[project])

    with capture_logs() as logs:
        supervisor = make_supervisor(http_client)
        run = await supervisor.start(project, make_event(TEST_SHA), snapshot)
        assert await run.wait() == DeployOutcome.success
        await supervisor.aclose()

    output = [
        (log["stream"], log["line"])
        for log in logs
        if log["event"] == "Deploy output"
    ]
    assert sorted(output) == sorted(
        [
            ("stdout", f"app org/app main {TEST_SHA}"),
            ("stdout", "production"),
            ("stdout", str(tmp_path.resolve())),
            ("stderr", "oops"),
        ]
    )
    assert all(
        log["project"] == "app" and log["sha"] == TEST_SHA
        for log in logs
        if log["event"] == "Deploy output"
    )
    assert any(log["event"] == "Deploy succeeded" for log in logs)


@pytest.mark.asyncio
async def test_commit_status(
    github_token: str, http_client: AsyncClient, respx_mock: respx.Router
) -> None:
    route = mock_commit_statuses(respx_mock)
    supervisor = make_supervisor(http_client)
    good = make_project("good")
    bad = make_project("bad", "/bin/sh", "-c", "exit 3")
    snapshot = ProjectsConfig(projects=[good, bad])

    run = await supervisor.start(good, make_event(TEST_SHA), snapshot)
    assert await run.wait() == DeployOutcome.success
    assert status_requests(route) == [
        {
            "state": "pending",
            "description": "Deploy of good is running",
            "context": "pushdeploy/good",
        },
        {
            "state": "success",
            "description": "Deploy of good succeeded",
            "context": "pushdeploy/good",
        },
    ]
    request = route.calls[0].request
    assert request.headers["Authorization"] == f"token {github_token}"

    run = await supervisor.start(bad, make_event(TEST_SHA), snapshot)
    assert await run.wait() == DeployOutcome.failure
    assert [s["state"] for s in status_requests(route)[2:]] == [
        "pending",
        "failure",
    ]
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_commit_status_spawn_error(
    github_token: str,
    http_client: AsyncClient,
    respx_mock: respx.Router,
    tmp_path: Path,
) -> None:
    route = mock_commit_statuses(respx_mock)
    supervisor = make_supervisor(http_client)
    project = make_project("app", tmp_path / "missing.sh")
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(TEST_SHA), snapshot)
    assert await run.wait() == DeployOutcome.spawn_error
    statuses = status_requests(route)
    assert len(statuses) == 1
    assert statuses[0]["state"] == "error"
    assert statuses[0]["context"] == "pushdeploy/app"
    await supervisor.aclose()


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
async def test_no_sha(
    github_token: str, http_client: AsyncClient, respx_mock: respx.Router
) -> None:
    route = mock_commit_statuses(respx_mock)
    supervisor = make_supervisor(http_client)
    project = make_project()
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(), snapshot)
    assert await run.wait() == DeployOutcome.success
    assert not route.called
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_github_failure(
    github_token: str, http_client: AsyncClient, respx_mock: respx.Router
) -> None:
    route = mock_commit_statuses(respx_mock, status_code=500)
    supervisor = make_supervisor(http_client)
    project = make_project()
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(TEST_SHA), snapshot)
    assert await run.wait() == DeployOutcome.success
    assert route.call_count == 2
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_slack_alert(
    slack: MockSlackWebhook, http_client: AsyncClient
) -> None:
    logger = structlog.get_logger("pushdeploy")
    hook = str(config_dependency.config.alert_hook)
    client = SlackWebhookClient(hook, "pushdeploy", logger)
    supervisor = make_supervisor(http_client, client)
    good = make_project("good")
    bad = make_project("bad", "/bin/sh", "-c", "exit 3")
    snapshot = ProjectsConfig(projects=[good, bad])

    runs = await supervisor.start_all([good, bad], make_event(), snapshot)
    await asyncio.gather(*(r.wait() for r in runs))
    assert len(slack.messages) == 1
    assert "Deploy of bad failed with exit code 3" in str(slack.messages[0])
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_aclose_waits(
    http_client: AsyncClient, tmp_path: Path
) -> None:
    supervisor = make_supervisor(http_client)
    project = make_project("slow", "/bin/sh", "-c", "sleep 0.5")
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(), snapshot)
    assert run.outcome == DeployOutcome.pending
    assert supervisor.runs == [run]
    summary = run.summarize()
    assert summary.project == "slow"
    assert summary.outcome == DeployOutcome.pending
    assert summary.exit_code is None

    await supervisor.aclose(timedelta(seconds=10))
    assert run.outcome == DeployOutcome.success
    assert supervisor.runs == []


@pytest.mark.asyncio
@pytest.mark.respx(assert_all_called=False)
async def test_unroutable_sha(
    github_token: str, http_client: AsyncClient, respx_mock: respx.Router
) -> None:
    mock_commit_statuses(respx_mock)
    supervisor = make_supervisor(http_client)
    project = make_project()
    snapshot = ProjectsConfig(projects=[project])

    with capture_logs() as logs:
        event = make_event("abc\x01def")
        run = await supervisor.start(project, event, snapshot)
        outcome = await asyncio.wait_for(run.wait(), timeout=10)
    assert outcome == DeployOutcome.success
    assert supervisor.runs == []
    failures = [
        log for log in logs if log["event"] == "Failed to report commit status"
    ]
    assert len(failures) == 2
    await supervisor.aclose()


@pytest.mark.asyncio
async def test_reporter_error(
    http_client: AsyncClient, mocker: MockerFixture
) -> None:
    supervisor = make_supervisor(http_client)
    report = mocker.patch.object(
        StatusReporter, "report", side_effect=RuntimeError("boom")
    )
    project = make_project()
    snapshot = ProjectsConfig(projects=[project])

    run = await supervisor.start(project, make_event(TEST_SHA), snapshot)
    outcome = await asyncio.wait_for(run.wait(), timeout=10)
    assert outcome == DeployOutcome.success
    assert run.exit_code == 0
    assert supervisor.runs == []
    assert report.call_count == 2
    await supervisor.aclose()
