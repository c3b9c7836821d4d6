"""
InstanceLock - single-instance guard for the refresh daemon.

Two files live in the lock directory:

    <name>.lock   JSON {"owner_pid", "timestamp", "hostname"}
    <name>.pid    the owner PID as plain text

A lock is honoured only while its owner is alive and its timestamp is
younger than the lock timeout. The owner calls refresh() on every tick, so
a long-running daemon keeps its lock current; a lock whose owner died or
stopped refreshing is reclaimed.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import aiofiles
import aiofiles.os
import psutil

from claude_live.core.errors import LockHeldError

logger = logging.getLogger(__name__)


@dataclass
class LockInfo:
    owner_pid: int
    timestamp: float
    hostname: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        return psutil.pid_exists(pid)
    except (OSError, ValueError):
        return False


class InstanceLock:
    """File-based lock keyed by a fixed name."""

    def __init__(
        self,
        name: str,
        lock_dir: Path,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.time,
        is_alive: Callable[[int], bool] = pid_alive,
    ) -> None:
        self.name = name
        self.lock_dir = Path(lock_dir)
        self.timeout = timeout
        self._clock = clock
        self._is_alive = is_alive
        self._held = False

    @property
    def lock_path(self) -> Path:
        return self.lock_dir / f"{self.name}.lock"

    @property
    def pid_path(self) -> Path:
        return self.lock_dir / f"{self.name}.pid"

    @property
    def held(self) -> bool:
        return self._held

    # =========================================================================
    # Acquire / release
    # =========================================================================

    async def acquire(self) -> bool:
        """
        Take the lock if it is free or abandoned.

        Returns:
            True if this process now owns the lock
        """
        await aiofiles.os.makedirs(self.lock_dir, exist_ok=True)

        info = await self.read_info()
        if info is not None:
            if info.owner_pid == os.getpid():
                self._held = True
                await self.refresh()
                return True
            if self.is_valid(info):
                logger.info(f"[Lock] {self.name} held by PID {info.owner_pid} on {info.hostname}")
                return False
            logger.warning(
                f"[Lock] Reclaiming abandoned lock {self.name} (PID {info.owner_pid}, "
                f"age {self._clock() - info.timestamp:.0f}s)"
            )
            await self.force_release()
        elif await aiofiles.os.path.exists(self.lock_path):
            logger.warning(f"[Lock] Removing unreadable lock file {self.lock_path}")
            await self.force_release()

        try:
            async with aiofiles.open(self.lock_path, "x") as f:
                await f.write(json.dumps(self._metadata().to_dict()))
        except FileExistsError:
            # another process won the race between our check and create
            return False

        async with aiofiles.open(self.pid_path, "w") as f:
            await f.write(str(os.getpid()))

        self._held = True
        logger.info(f"[Lock] Acquired {self.name} (PID {os.getpid()})")
        return True

    async def acquire_or_raise(self) -> None:
        if not await self.acquire():
            info = await self.read_info()
            raise LockHeldError(info.owner_pid if info else None, str(self.lock_path))

    async def refresh(self) -> None:
        """Rewrite the timestamp so the lock does not look abandoned."""
        if not self._held:
            return
        async with aiofiles.open(self.lock_path, "w") as f:
            await f.write(json.dumps(self._metadata().to_dict()))

    async def release(self) -> bool:
        """Remove the lock if this process owns it."""
        info = await self.read_info()
        if info is None or info.owner_pid != os.getpid():
            self._held = False
            return False
        await self.force_release()
        logger.info(f"[Lock] Released {self.name}")
        return True

    async def force_release(self) -> None:
        for path in (self.lock_path, self.pid_path):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                pass
        self._held = False

    # =========================================================================
    # Inspection
    # =========================================================================

    async def read_info(self) -> Optional[LockInfo]:
        try:
            async with aiofiles.open(self.lock_path, "r") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug(f"[Lock] Failed to read {self.lock_path}: {e}")
            return None

        try:
            data = json.loads(content)
            return LockInfo(
                owner_pid=int(data["owner_pid"]),
                timestamp=float(data["timestamp"]),
                hostname=str(data.get("hostname", "")),
            )
        except (ValueError, KeyError, TypeError):
            return None

    def is_valid(self, info: LockInfo) -> bool:
        if info.owner_pid <= 0:
            return False
        if self._clock() - info.timestamp >= self.timeout:
            return False
        return self._is_alive(info.owner_pid)

    async def is_locked(self) -> bool:
        info = await self.read_info()
        return info is not None and self.is_valid(info)

    def _metadata(self) -> LockInfo:
        return LockInfo(owner_pid=os.getpid(), timestamp=self._clock(), hostname=socket.gethostname())

    async def __aenter__(self) -> "InstanceLock":
        await self.acquire_or_raise()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()
