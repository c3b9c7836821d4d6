"""
ProcessWatchdog - Supervision of the background refresh worker
==============================================================

The worker stamps its PID into the store (@ccusage_daemon_pid) when it
starts and on every tick. The watchdog resolves that PID (falling back to
the owner of a live instance lock), probes the OS for liveness and, when
asked, restarts the worker:

    stop old worker (best effort) -> remove abandoned lock/pid artifacts
        -> spawn new worker -> settle -> forget cached PID -> re-check

State is one of Unknown PID, Alive or Dead. Diagnosis
(perform_health_check) never triggers recovery; only ensure_running and
restart act.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import psutil

from claude_live.core.errors import StoreError
from claude_live.core.instance_lock import InstanceLock, pid_alive

logger = logging.getLogger(__name__)

DAEMON_PID_KEY = "daemon_pid"


# =============================================================================
# Capabilities
# =============================================================================


class LivenessProbe(Protocol):
    def is_alive(self, pid: int) -> bool:
        ...


class PsutilLivenessProbe:
    """Zero-effect liveness check; only "no such process" counts as dead."""

    def is_alive(self, pid: int) -> bool:
        return pid_alive(pid)


class WorkerController(Protocol):
    async def stop(self, pid: int) -> None:
        ...

    async def cleanup(self) -> None:
        ...

    async def start(self) -> None:
        ...


class SubprocessWorkerController:
    """Stops workers via psutil and spawns new ones as detached subprocesses."""

    def __init__(
        self,
        lock: InstanceLock,
        command: Optional[Sequence[str]] = None,
        terminate_timeout: float = 5.0,
    ) -> None:
        self.lock = lock
        self.command = list(command) if command else [sys.executable, "-m", "claude_live", "start"]
        self.terminate_timeout = terminate_timeout

    async def stop(self, pid: int) -> None:
        loop = asyncio.get_running_loop()

        def _terminate() -> None:
            try:
                proc = psutil.Process(pid)
                proc.terminate()
                try:
                    proc.wait(timeout=self.terminate_timeout)
                except psutil.TimeoutExpired:
                    logger.warning(f"[Watchdog] PID {pid} ignored SIGTERM, killing")
                    proc.kill()
            except psutil.NoSuchProcess:
                pass

        await loop.run_in_executor(None, _terminate)

    async def cleanup(self) -> None:
        info = await self.lock.read_info()
        if info is not None and self.lock.is_valid(info):
            logger.warning(f"[Watchdog] Lock still held by live PID {info.owner_pid}, leaving it in place")
            return
        await self.lock.force_release()

    async def start(self) -> None:
        await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
        logger.info(f"[Watchdog] Spawned worker: {' '.join(self.command)}")


# =============================================================================
# Health model
# =============================================================================


class WorkerState(str, Enum):
    UNKNOWN_PID = "unknown_pid"
    ALIVE = "alive"
    DEAD = "dead"


@dataclass
class DaemonHealth:
    daemon_pid: Optional[int]
    is_alive: bool
    issues: List[str] = field(default_factory=list)
    recovery_actions: List[str] = field(default_factory=list)

    @property
    def state(self) -> WorkerState:
        if self.daemon_pid is None:
            return WorkerState.UNKNOWN_PID
        return WorkerState.ALIVE if self.is_alive else WorkerState.DEAD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daemon_pid": self.daemon_pid,
            "is_alive": self.is_alive,
            "state": self.state.value,
            "issues": list(self.issues),
            "recovery_actions": list(self.recovery_actions),
        }


# =============================================================================
# Watchdog
# =============================================================================


class ProcessWatchdog:
    """Resolves, probes and restarts the refresh worker."""

    def __init__(
        self,
        store: Any,
        controller: WorkerController,
        probe: Optional[LivenessProbe] = None,
        lock: Optional[InstanceLock] = None,
        pid_cache_ttl: float = 30.0,
        max_restart_attempts: int = 3,
        restart_cooldown_ms: int = 5000,
        stop_settle: float = 2.0,
        start_settle: float = 3.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.controller = controller
        self.probe = probe or PsutilLivenessProbe()
        self.lock = lock
        self.pid_cache_ttl = pid_cache_ttl
        self.max_restart_attempts = max_restart_attempts
        self.restart_cooldown_ms = restart_cooldown_ms
        self.stop_settle = stop_settle
        self.start_settle = start_settle
        self._clock = clock
        self._sleep = sleep
        self._cached_pid: Optional[int] = None
        self._cached_at: float = 0.0
        self.restart_count = 0

    async def get_daemon_pid(self) -> Optional[int]:
        now = self._clock()
        if self._cached_pid is not None and now - self._cached_at < self.pid_cache_ttl:
            return self._cached_pid

        try:
            raw = await self.store.get(DAEMON_PID_KEY)
        except StoreError as e:
            logger.error(f"[Watchdog] Failed to read daemon PID: {e}")
            raw = None

        pid = None
        if raw:
            try:
                pid = int(raw)
            except ValueError:
                logger.warning(f"[Watchdog] Ignoring malformed daemon PID {raw!r}")

        if pid is None:
            pid = await self._lock_owner_pid()

        self._cached_pid = pid
        self._cached_at = now
        return pid

    async def _lock_owner_pid(self) -> Optional[int]:
        """PID of a live instance-lock owner, used when the store lost daemon_pid."""
        if self.lock is None:
            return None
        info = await self.lock.read_info()
        if info is None or not self.lock.is_valid(info):
            return None
        logger.info(f"[Watchdog] daemon_pid missing from store, using lock owner PID {info.owner_pid}")
        return info.owner_pid

    def clear_pid_cache(self) -> None:
        self._cached_pid = None
        self._cached_at = 0.0

    def is_process_alive(self, pid: Optional[int]) -> bool:
        if pid is None or pid <= 0:
            return False
        try:
            return self.probe.is_alive(pid)
        except Exception as e:
            # only a definite "no such process" counts as dead
            logger.warning(f"[Watchdog] Liveness probe failed for PID {pid}: {e}")
            return True

    async def is_healthy(self) -> bool:
        pid = await self.get_daemon_pid()
        if pid is None:
            return False
        alive = self.is_process_alive(pid)
        if not alive:
            self.clear_pid_cache()
        return alive

    async def restart(self) -> bool:
        """
        Stop, clean up and respawn the worker.

        Returns:
            Health after the restart settled
        """
        logger.info("[Watchdog] Restarting worker")
        pid = await self.get_daemon_pid()
        if pid is not None and self.is_process_alive(pid):
            try:
                await self.controller.stop(pid)
            except Exception as e:
                logger.debug(f"[Watchdog] Stop of PID {pid} failed (may already be gone): {e}")
        await self._sleep(self.stop_settle)

        try:
            await self.controller.cleanup()
        except OSError as e:
            logger.warning(f"[Watchdog] Artifact cleanup failed: {e}")

        try:
            await self.controller.start()
        except Exception as e:
            logger.error(f"[Watchdog] Failed to start worker: {e}")
            return False

        self.restart_count += 1
        await self._sleep(self.start_settle)
        self.clear_pid_cache()
        healthy = await self.is_healthy()
        logger.info(f"[Watchdog] Restart {'succeeded' if healthy else 'did not produce a healthy worker'}")
        return healthy

    async def ensure_running(self) -> bool:
        if await self.is_healthy():
            return True

        for attempt in range(1, self.max_restart_attempts + 1):
            logger.warning(f"[Watchdog] Worker not healthy, restart attempt {attempt}/{self.max_restart_attempts}")
            if await self.restart():
                return True
            if attempt < self.max_restart_attempts:
                await self._sleep(self.restart_cooldown_ms / 1000.0)

        logger.error(f"[Watchdog] Worker still down after {self.max_restart_attempts} restart attempts")
        return False

    async def perform_health_check(self) -> DaemonHealth:
        pid = await self.get_daemon_pid()
        if pid is None:
            return DaemonHealth(
                daemon_pid=None,
                is_alive=False,
                issues=["Daemon PID not found in tmux variables"],
                recovery_actions=["Start daemon manually or check tmux configuration"],
            )

        alive = self.is_process_alive(pid)
        if not alive:
            self.clear_pid_cache()
            return DaemonHealth(
                daemon_pid=pid,
                is_alive=False,
                issues=[f"Daemon process (PID: {pid}) is not running"],
                recovery_actions=["Restart daemon automatically"],
            )
        return DaemonHealth(daemon_pid=pid, is_alive=True)

