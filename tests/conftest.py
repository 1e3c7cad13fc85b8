"""Test fixtures for pushdeploy tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
import respx
import structlog
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture
from safir.testing.slack import MockSlackWebhook, mock_slack_webhook
from structlog.stdlib import BoundLogger

from pushdeploy import main
from pushdeploy.dependencies.config import (
    config_dependency,
    projects_dependency,
)
from pushdeploy.services.supervisor import DeployRun, DeploySupervisor

from .support.config import write_projects_file
from .support.constants import TEST_BASE_URL, TEST_GITHUB_TOKEN

_ENVIRONMENT = (
    "GITHUB_TOKEN",
    "PUSHDEPLOY_ALERT_HOOK",
    "PUSHDEPLOY_GITHUB_TOKEN",
    "PUSHDEPLOY_GITHUB_TOKEN_FILE",
    "PUSHDEPLOY_PROJECTS_PATH",
    "PUSHDEPLOY_SLACK_ALERTS",
)


@pytest.fixture(autouse=True)
def _configure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal configuration settings.

    Clears any settings inherited from the environment that would change the
    behavior under test, and points the service at a projects file with a
    webhook secret and no projects.

    This is an autouse fixture, so it will ensure that each test gets the
    minimal test configuration. Tests that need projects write their own
    projects file and pass it to ``projects_dependency.set_path``.
    """
    for variable in _ENVIRONMENT:
        monkeypatch.delenv(variable, raising=False)
    config_dependency.reset()
    projects_dependency.set_path(write_projects_file(tmp_path / "base.json"))


@pytest.fixture
def logger() -> BoundLogger:
    return structlog.get_logger("pushdeploy")


@pytest.fixture
def github_token(monkeypatch: pytest.MonkeyPatch) -> str:
    """Provide a GitHub token through the environment."""
    monkeypatch.setenv("PUSHDEPLOY_GITHUB_TOKEN", TEST_GITHUB_TOKEN)
    config_dependency.reset()
    return TEST_GITHUB_TOKEN


@pytest.fixture
def slack(
    respx_mock: respx.Router, monkeypatch: pytest.MonkeyPatch
) -> MockSlackWebhook:
    alert_hook = "https://slack.example.com/XXXX"
    monkeypatch.setenv("PUSHDEPLOY_ALERT_HOOK", alert_hook)
    monkeypatch.setenv("PUSHDEPLOY_SLACK_ALERTS", "true")
    config_dependency.reset()
    return mock_slack_webhook(alert_hook, respx_mock)


@pytest_asyncio.fixture
async def app() -> AsyncGenerator[FastAPI]:
    """Return a configured test application.

    Wraps the application in a lifespan manager so that startup and shutdown
    events are sent during test execution.
    """
    app = main.create_app()
    async with LifespanManager(app, shutdown_timeout=10):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Return an ``httpx.AsyncClient`` configured to talk to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=TEST_BASE_URL,
    ) as client:
        yield client


@pytest.fixture
def deploy_runs(mocker: MockerFixture) -> Iterator[list[DeployRun]]:
    """Record every run started by the supervisor.

    Runs are forgotten by the supervisor once they have been reported, so
    tests that check outcomes after the webhook response need their own
    references.
    """
    runs: list[DeployRun] = []
    start = DeploySupervisor.start

    async def record(self: DeploySupervisor, *args: Any) -> DeployRun:
        run = await start(self, *args)
        runs.append(run)
        return run

    mocker.patch.object(DeploySupervisor, "start", record)
    yield runs
