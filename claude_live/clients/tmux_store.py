"""
tmux global user options as a key/value store.

Keys are short names ("total_tokens") that TmuxStore prefixes with the
configured option prefix ("@ccusage_"). Every call goes through
CommandRunner and is bounded by a timeout; tmux failures are mapped onto
the StoreError family so the classifier can route them.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence

from claude_live.clients.command_runner import CommandResult, CommandRunner
from claude_live.core.errors import (
    CommandError,
    CommandNotFoundError,
    CommandTimeoutError,
    StoreError,
    StoreNoSessionError,
    StorePermissionError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

_OPTION_LINE = re.compile(r"^(\S+)\s+(.*)$")

# stderr fragments emitted by tmux when no server/session is reachable
_NO_SESSION_MARKERS = (
    "no server running",
    "no current session",
    "no sessions",
    "error connecting",
    "server exited",
)


def sanitize_value(value: object) -> str:
    """
    Make a value safe to pass to tmux as a single argument.

    No shell is involved, so only tmux's own command parser matters: line
    breaks would split the status line and a trailing ';' is read as a
    command separator.
    """
    text = "" if value is None else str(value)
    text = text.replace("\r", " ").replace("\n", " ").replace("\x00", "")
    if text.endswith(";") and not text.endswith("\\;"):
        text = text[:-1] + "\\;"
    return text


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        raw = raw[1:-1]
        raw = raw.replace('\\"', '"').replace("\\$", "$").replace("\\\\", "\\")
    return raw


class TmuxStore:
    """Async key/value store backed by `tmux set-option -g`."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        prefix: str = "@ccusage_",
        timeout: float = 5.0,
        bulk_timeout: float = 30.0,
        tmux_binary: str = "tmux",
    ) -> None:
        self.runner = runner or CommandRunner(default_timeout=timeout)
        self.prefix = prefix
        self.timeout = timeout
        self.bulk_timeout = bulk_timeout
        self.tmux_binary = tmux_binary

    def option_name(self, key: str) -> str:
        return key if key.startswith(self.prefix) else f"{self.prefix}{key}"

    # =========================================================================
    # Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Return the option value, or None when unset or empty."""
        result = await self._tmux(["show-option", "-gqv", self.option_name(key)], key=key)
        value = result.stdout.strip()
        return value or None

    async def set(self, key: str, value: object) -> None:
        await self._tmux(["set-option", "-g", self.option_name(key), sanitize_value(value)], key=key)

    async def unset(self, key: str) -> None:
        await self._tmux(["set-option", "-gu", self.option_name(key)], key=key)

    async def bulk_set(self, values: Mapping[str, object]) -> int:
        """
        Write many options in one tmux invocation.

        The commands are chained with ';' so tmux applies them in a single
        client round-trip. If the chained call fails, each key is retried on
        its own; partial success is logged and the count returned. Raises
        only when nothing could be written.

        Returns:
            Number of keys written
        """
        if not values:
            return 0

        argv: List[str] = []
        for key, value in values.items():
            if argv:
                argv.append(";")
            argv.extend(["set-option", "-g", self.option_name(key), sanitize_value(value)])

        try:
            await self._tmux(argv, timeout=self.bulk_timeout)
            return len(values)
        except StoreNoSessionError:
            raise
        except StoreError as e:
            logger.warning(f"[Store] Bulk write of {len(values)} keys failed ({e}), falling back per key")

        written = 0
        last_error: Optional[StoreError] = None
        for key, value in values.items():
            try:
                await self.set(key, value)
                written += 1
            except StoreError as e:
                last_error = e
                logger.debug(f"[Store] Failed to set {key}: {e}")

        if written == 0 and last_error is not None:
            raise last_error
        if written < len(values):
            logger.warning(f"[Store] Partial bulk write: {written}/{len(values)} keys applied")
        return written

    async def enumerate(self, prefix: str = "") -> Dict[str, str]:
        """
        List options under the store prefix.

        Args:
            prefix: Extra filter applied to the short key name

        Returns:
            Mapping of short key name to value
        """
        result = await self._tmux(["show-options", "-g"])
        found: Dict[str, str] = {}
        for line in result.stdout.splitlines():
            match = _OPTION_LINE.match(line.strip())
            if not match:
                continue
            name, raw_value = match.groups()
            if not name.startswith(self.prefix):
                continue
            short = name[len(self.prefix):]
            if short.startswith(prefix):
                found[short] = _unquote(raw_value)
        return found

    async def clear_all(self, keys: Optional[Sequence[str]] = None) -> int:
        """Unset the given keys, or every key under the prefix."""
        targets = list(keys) if keys is not None else list((await self.enumerate()).keys())
        cleared = 0
        for key in targets:
            try:
                await self.unset(key)
                cleared += 1
            except StoreError as e:
                logger.debug(f"[Store] Failed to unset {key}: {e}")
        return cleared

    # =========================================================================
    # Internals
    # =========================================================================

    async def _tmux(
        self,
        args: Sequence[str],
        key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = [self.tmux_binary, *args]
        try:
            return await self.runner.run(argv, timeout=timeout or self.timeout)
        except CommandError as e:
            raise self._map_error(e, key) from e

    def _map_error(self, error: CommandError, key: Optional[str]) -> StoreError:
        if isinstance(error, CommandNotFoundError):
            return StoreUnavailableError("tmux is not installed or not on PATH", key=key)
        if isinstance(error, CommandTimeoutError):
            return StoreUnavailableError(f"tmux did not answer within {error.timeout}s", key=key)

        stderr = (error.stderr or str(error)).lower()
        if any(marker in stderr for marker in _NO_SESSION_MARKERS):
            return StoreNoSessionError("No tmux server or session is running", key=key, stderr=error.stderr)
        if "permission denied" in stderr:
            return StorePermissionError("Permission denied talking to tmux", key=key, stderr=error.stderr)
        return StoreUnavailableError(f"tmux command failed: {error}", key=key, stderr=error.stderr)
