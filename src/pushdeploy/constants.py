"""Global constants for pushdeploy."""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "DEFAULT_PROJECTS_PATH",
    "DEPLOY_OUTPUT_LINE_LIMIT",
    "DEFAULT_STATUS_CONTEXT",
    "DEFAULT_WEBHOOK_PATH",
    "DEFAULT_WEBHOOK_PORT",
    "GITHUB_STATUS_DESCRIPTION_LIMIT",
    "INGRESS_FALLBACK_SERVICE",
    "NULL_SHA",
    "SIGNATURE_PREFIX",
]

DEFAULT_PROJECTS_PATH = Path("config") / "projects.json"
"""Default location of the projects file, relative to the working directory."""

DEFAULT_WEBHOOK_PATH = "/github"
"""Path the webhook route is served at if the projects file sets none."""

DEFAULT_WEBHOOK_PORT = 4000
"""Port the server listens on if the projects file sets none."""

DEPLOY_OUTPUT_LINE_LIMIT = 1024 * 1024
"""Longest line of deploy output that is logged; longer lines are dropped."""

DEFAULT_STATUS_CONTEXT = "pushdeploy"
"""Prefix of the commit status context, followed by the project name."""

GITHUB_STATUS_DESCRIPTION_LIMIT = 140
"""GitHub rejects commit status descriptions longer than this."""

INGRESS_FALLBACK_SERVICE = "http_status:404"
"""Service of the catch-all rule that terminates every ingress list."""

NULL_SHA = "0" * 40
"""SHA GitHub sends as ``after`` when a branch is deleted."""

SIGNATURE_PREFIX = "sha256="
"""Scheme tag at the start of the ``X-Hub-Signature-256`` header."""
