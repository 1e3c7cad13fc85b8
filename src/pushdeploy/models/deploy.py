"""Models for deploy runs."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

__all__ = ["DeployOutcome", "DeployRunSummary"]


class DeployOutcome(StrEnum):
    """State of one deploy run."""

    pending = "pending"
    success = "success"
    failure = "failure"
    spawn_error = "spawn_error"


class DeployRunSummary(BaseModel):
    """Information about one deploy run."""

    project: str = Field(..., title="Project name", examples=["app"])

    repository: str = Field(..., title="Repository", examples=["org/app"])

    branch: str = Field(..., title="Branch", examples=["main"])

    sha: str | None = Field(None, title="Commit SHA")

    started_at: datetime = Field(..., title="When the deploy was started")

    outcome: DeployOutcome = Field(..., title="Outcome")

    exit_code: int | None = Field(
        None,
        title="Exit code",
        description="Absent until the process exits, and for spawn errors.",
    )
