"""Run noninteractive subprocesses asynchronously."""

import asyncio
from pathlib import Path
from shlex import join

from structlog.stdlib import BoundLogger

from ..exceptions import SubprocessError

__all__ = ["Process"]


class Process:
    """A thin wrapper around asyncio.subprocess.create_subprocess_exec.

    Used for short administrative commands whose output only matters if they
    fail. Deploy scripts are run by the supervisor instead, which streams
    their output.

    Parameters
    ----------
    logger
        Logger to use.
    """

    def __init__(self, logger: BoundLogger | None = None) -> None:
        self._logger = logger

    async def exec(
        self,
        cmd: str,
        *args: str,
        cwd: Path | None = None,
    ) -> str:
        """Run a command to completion.

        Returns
        -------
        str
            Standard output of the command.

        Raises
        ------
        SubprocessError
            Raised if the command cannot be started or exits non-zero.
        """
        cmd_and_args = join([cmd, *args])
        try:
            proc = await asyncio.subprocess.create_subprocess_exec(
                cmd,
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            msg = f"{cmd_and_args} could not be started ({e!s})"
            raise SubprocessError(msg, cwd=cwd) from e
        stdout, stderr = await proc.communicate()  # Waits for process exit

        if proc.returncode != 0:
            raise SubprocessError(
                f"{cmd_and_args} failed",
                returncode=proc.returncode,
                stdout=stdout.decode(errors="replace"),
                stderr=stderr.decode(errors="replace"),
                cwd=cwd,
            )
        if self._logger:
            self._logger.debug(f"{cmd_and_args} exited with rc=0")
        return stdout.decode(errors="replace")
