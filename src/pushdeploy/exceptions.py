"""Exceptions for pushdeploy."""

from __future__ import annotations

from pathlib import Path
from typing_extensions import override

from fastapi import status
from safir.fastapi import ClientRequestError
from safir.models import ErrorLocation
from safir.slack.blockkit import SlackException

__all__ = [
    "InvalidPayloadError",
    "InvalidSignatureError",
    "ProjectsConfigError",
    "SubprocessError",
    "UnknownProfileError",
    "WebhookNotFoundError",
]


class InvalidSignatureError(ClientRequestError):
    """The webhook signature is missing or does not match the body."""

    error = "invalid_signature"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self) -> None:
        super().__init__(
            "Invalid signature", ErrorLocation.header, ["X-Hub-Signature-256"]
        )


class InvalidPayloadError(ClientRequestError):
    """The webhook body is not a JSON object."""

    error = "invalid_json"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid JSON: {reason}", ErrorLocation.body)


class WebhookNotFoundError(ClientRequestError):
    """Something other than a POST was sent to the webhook path."""

    error = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self) -> None:
        super().__init__("Not found")


class ProjectsConfigError(Exception):
    """The projects file could not be read or is invalid."""

    def __init__(self, path: Path, exc: Exception) -> None:
        if str(exc):
            error = f"{type(exc).__name__}: {exc!s}"
        else:
            error = type(exc).__name__
        super().__init__(f"Unable to load projects file {path}: {error}")
        self.path = path


class UnknownProfileError(Exception):
    """The named Cloudflare profile is not in the projects file."""

    def __init__(self, profile: str) -> None:
        super().__init__(f"Cloudflare profile {profile} not found")
        self.profile = profile


class SubprocessError(SlackException):
    """Running a subprocess failed."""

    def __init__(
        self,
        msg: str,
        *,
        returncode: int | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        cwd: Path | None = None,
    ) -> None:
        super().__init__(msg)
        self.msg = msg
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd

    @override
    def __str__(self) -> str:
        return (
            f"{self.msg} with rc={self.returncode};"
            f" stdout='{self.stdout}'; stderr='{self.stderr}'"
            f" cwd='{self.cwd}'"
        )

