"""Resolution of push events to configured projects."""

from __future__ import annotations

from ..models.event import PushEvent
from ..models.projects import ProjectsConfig, ProjectSpec

__all__ = ["match_projects"]


def match_projects(
    config: ProjectsConfig, event: PushEvent
) -> list[ProjectSpec]:
    """Find the projects a push event should deploy.

    Repository names are compared exactly, including case. A project with no
    branch filter matches every branch of its repository. Disabled projects
    never match.

    Parameters
    ----------
    config
        Snapshot of the projects file.
    event
        Inbound push event.

    Returns
    -------
    list of ProjectSpec
        Matching projects in the order they appear in the projects file.
        Empty if the event has no repository or branch.
    """
    branch = event.branch
    if not event.repository or not branch:
        return []
    return [
        project
        for project in config.projects
        if project.enabled
        and project.repo == event.repository
        and (not project.branch or project.branch == branch)
    ]
