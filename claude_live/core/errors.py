"""
Exception hierarchy for claude_live.

Failures carry structured context (which command ran, its exit status and
stderr) so the ErrorClassifier can route them by type instead of by
message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    """Failure taxonomy used for classification and recovery routing."""
    UPSTREAM_MISSING = "upstream_missing"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    MALFORMED_RESPONSE = "malformed_response"
    STORE_UNAVAILABLE = "store_unavailable"
    STORE_NO_SESSION = "store_no_session"
    STORE_PERMISSION = "store_permission"
    CONFIG_INVALID = "config_invalid"
    UNKNOWN = "unknown"


class ClaudeLiveError(Exception):
    """Base class for every error raised by claude_live."""


# =============================================================================
# Subprocess failures
# =============================================================================


class CommandError(ClaudeLiveError):
    """A subprocess could not be run or did not succeed."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr

    @property
    def executable(self) -> str:
        return self.command[0] if self.command else ""


class CommandNotFoundError(CommandError):
    """The executable is not on PATH."""


class CommandTimeoutError(CommandError):
    """The subprocess exceeded its timeout and was killed."""

    def __init__(self, message: str, command: Sequence[str] = (), timeout: float = 0.0) -> None:
        super().__init__(message, command=command)
        self.timeout = timeout


class CommandFailedError(CommandError):
    """The subprocess exited with a non-zero status."""


# =============================================================================
# Upstream, store and config failures
# =============================================================================


class MalformedResponseError(ClaudeLiveError):
    """Upstream output was not JSON or did not match the expected structure."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class StoreError(ClaudeLiveError):
    """The tmux option store rejected or could not serve a request."""

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message: str, key: Optional[str] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.key = key
        self.stderr = stderr


class StoreUnavailableError(StoreError):
    kind = ErrorKind.STORE_UNAVAILABLE


class StoreNoSessionError(StoreError):
    kind = ErrorKind.STORE_NO_SESSION


class StorePermissionError(StoreError):
    kind = ErrorKind.STORE_PERMISSION


class ConfigInvalidError(ClaudeLiveError):
    """Display configuration failed validation."""

    def __init__(self, message: str, problems: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.problems = list(problems)


class LockHeldError(ClaudeLiveError):
    """Another live process owns the single-instance lock."""

    def __init__(self, owner_pid: Optional[int], lock_path: str = "") -> None:
        pid_text = owner_pid if owner_pid is not None else "unknown"
        super().__init__(f"Another daemon instance is running (PID: {pid_text})")
        self.owner_pid = owner_pid
        self.lock_path = lock_path
