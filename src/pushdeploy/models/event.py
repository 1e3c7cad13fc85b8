"""Model for inbound GitHub events."""

from __future__ import annotations

import re
from typing import Any, Self

from gidgethub.sansio import Event
from pydantic import BaseModel, Field

from ..constants import NULL_SHA

__all__ = ["PushEvent"]

_BRANCH_PREFIX = "refs/heads/"

_SHA_PATTERN = re.compile("[0-9a-fA-F]{40}")


def _commit_sha(value: Any) -> str | None:
    if not isinstance(value, str) or value == NULL_SHA:
        return None
    return value if _SHA_PATTERN.fullmatch(value) else None


class PushEvent(BaseModel):
    """The parts of a GitHub webhook event that routing depends on."""

    kind: str = Field(
        ..., title="Event kind", description="From ``X-GitHub-Event``."
    )

    delivery_id: str | None = Field(
        None, title="Delivery ID", description="From ``X-GitHub-Delivery``."
    )

    repository: str = Field(
        "", title="Repository full name", examples=["org/app"]
    )

    ref: str = Field("", title="Ref", examples=["refs/heads/main"])

    sha: str | None = Field(
        None,
        title="Head commit SHA",
        description="Absent for deleted branches and non-push events.",
    )

    @property
    def branch(self) -> str:
        """Branch name, or the whole ref if it does not name a branch."""
        return self.ref.removeprefix(_BRANCH_PREFIX)

    @classmethod
    def from_event(cls, event: Event) -> Self:
        """Extract routing information from a decoded webhook event.

        Missing or oddly-typed fields become empty values rather than
        errors; the dispatcher decides what to do about them. A commit SHA
        that is not 40 hex digits is treated as absent.
        """
        data: dict[str, Any] = event.data
        repository = data.get("repository")
        full_name = ""
        if isinstance(repository, dict):
            full_name = repository.get("full_name") or ""
        ref = data.get("ref") or ""

        sha = _commit_sha(data.get("after"))
        if sha is None:
            head_commit = data.get("head_commit")
            if isinstance(head_commit, dict):
                sha = _commit_sha(head_commit.get("id"))

        return cls(
            kind=event.event,
            delivery_id=event.delivery_id,
            repository=full_name if isinstance(full_name, str) else "",
            ref=ref if isinstance(ref, str) else "",
            sha=sha,
        )
