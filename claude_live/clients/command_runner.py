"""
Async subprocess execution with bounded timeouts.

Both external collaborators (ccusage and tmux) are reached through
CommandRunner so every suspension point has a timeout and every failure
arrives as a typed CommandError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from claude_live.core.errors import (
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished subprocess."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs argv-style commands without a shell."""

    def __init__(self, default_timeout: float = 10.0) -> None:
        self.default_timeout = default_timeout

    async def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        """
        Run a command and collect its output.

        Args:
            argv: Executable followed by its arguments
            timeout: Seconds before the child is killed (default_timeout if None)
            check: Raise CommandFailedError on non-zero exit

        Returns:
            CommandResult with decoded stdout/stderr

        Raises:
            CommandNotFoundError: executable missing
            CommandTimeoutError: timeout exceeded
            CommandFailedError: non-zero exit and check=True
        """
        argv = list(argv)
        timeout = self.default_timeout if timeout is None else timeout

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise CommandNotFoundError(
                f"{argv[0]}: command not found", command=argv, returncode=127
            ) from e
        except PermissionError as e:
            raise CommandFailedError(
                f"{argv[0]}: permission denied", command=argv, returncode=126, stderr=str(e)
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Command] Timeout after {timeout}s: {' '.join(argv)}")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise CommandTimeoutError(
                f"{argv[0]} timed out after {timeout}s", command=argv, timeout=timeout
            )

        result = CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if check and not result.ok:
            raise CommandFailedError(
                f"{argv[0]} exited with status {result.returncode}: {result.stderr.strip()}",
                command=argv,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result
