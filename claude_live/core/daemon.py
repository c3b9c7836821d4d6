"""
UsageDaemon - long-running refresh worker.

Wires the refresh cycle, reliability coordinator and instance lock
together, runs the timers and handles shutdown:

    start:    lock -> stamp daemon_pid / status=active -> first cycle
              -> refresh timer + monitoring timer -> signal handlers
    shutdown: stop timers -> release lock -> status=stopped (best effort)

Only a failure to take the instance lock aborts startup. Everything else
is logged and surfaces in the reliability report.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Set

import aiofiles
import aiofiles.os
import psutil

from claude_live.clients.command_runner import CommandRunner
from claude_live.clients.tmux_store import TmuxStore
from claude_live.clients.usage_client import UsageClient
from claude_live.config.settings import DaemonSettings
from claude_live.core.cache_engine import CacheEngine
from claude_live.core.errors import StoreError
from claude_live.core.freshness_tracker import DAEMON_STATUS_KEY, FreshnessTracker
from claude_live.core.health_checker import HealthChecker
from claude_live.core.instance_lock import InstanceLock, pid_alive
from claude_live.core.process_watchdog import (
    DAEMON_PID_KEY,
    ProcessWatchdog,
    SubprocessWorkerController,
)
from claude_live.core.recovery_engine import ErrorLedger, RetryExecutor
from claude_live.core.refresh_cycle import CycleBudgets, RefreshCycle, RetryBudget
from claude_live.core.reliability_coordinator import ReliabilityCoordinator

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_STOPPED = "stopped"


# =============================================================================
# Runtime wiring
# =============================================================================


@dataclass
class Runtime:
    """Every collaborator of one process, built once and passed by reference."""
    settings: DaemonSettings
    store: TmuxStore
    lock: InstanceLock
    freshness: FreshnessTracker
    cycle: RefreshCycle
    watchdog: ProcessWatchdog
    coordinator: ReliabilityCoordinator
    health: HealthChecker


def _freshness_tracker(store: TmuxStore, settings: DaemonSettings) -> FreshnessTracker:
    return FreshnessTracker(
        store,
        fresh_threshold=settings.fresh_threshold,
        stale_threshold=settings.stale_threshold,
        auto_invalidate=settings.auto_invalidate,
        warning_prefix=settings.warning_prefix,
    )


def build_runtime(settings: DaemonSettings, runner: Optional[CommandRunner] = None) -> Runtime:
    runner = runner or CommandRunner(default_timeout=settings.store_timeout)
    store = TmuxStore(
        runner=runner,
        prefix=settings.store_prefix,
        timeout=settings.store_timeout,
        bulk_timeout=settings.store_bulk_timeout,
    )
    lock = InstanceLock(settings.lock_name, settings.lock_dir, timeout=settings.lock_timeout)
    # monitoring side gets its own tracker; stamp state stays private to the cycle
    freshness = _freshness_tracker(store, settings)
    cycle = RefreshCycle(
        store=store,
        usage_client=UsageClient(runner, command=settings.upstream_command, timeout=settings.upstream_timeout),
        executor=RetryExecutor(ErrorLedger()),
        freshness=_freshness_tracker(store, settings),
        cache=CacheEngine(
            base_ttl_ms=settings.cache_base_ttl_ms,
            min_ttl_ms=settings.cache_min_ttl_ms,
            max_ttl_ms=settings.cache_max_ttl_ms,
        ),
        budgets=CycleBudgets(
            config=RetryBudget(settings.config_attempts, settings.config_backoff_ms),
            upstream=RetryBudget(settings.upstream_attempts, settings.upstream_backoff_ms),
            store=RetryBudget(settings.store_attempts, settings.store_backoff_ms),
        ),
    )
    watchdog = ProcessWatchdog(
        store,
        controller=SubprocessWorkerController(lock),
        lock=lock,
        pid_cache_ttl=settings.pid_cache_ttl,
        max_restart_attempts=settings.max_restart_attempts,
        restart_cooldown_ms=settings.restart_cooldown_ms,
        stop_settle=settings.stop_settle,
        start_settle=settings.start_settle,
    )
    coordinator = ReliabilityCoordinator(
        watchdog,
        freshness,
        auto_recovery=settings.auto_recovery,
        critical_alert_threshold=settings.critical_alert_threshold,
        recovery_settle=settings.recovery_settle,
    )
    return Runtime(
        settings=settings,
        store=store,
        lock=lock,
        freshness=freshness,
        cycle=cycle,
        watchdog=watchdog,
        coordinator=coordinator,
        health=HealthChecker(),
    )


# =============================================================================
# Daemon
# =============================================================================


class UsageDaemon:
    """Runs the refresh and monitoring timers until shutdown."""

    def __init__(self, runtime: Runtime) -> None:
        self.runtime = runtime
        self.settings = runtime.settings
        self.cycle = runtime.cycle
        self._refresh_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()
        self._shutting_down = False
        self._shutdown_task: Optional[asyncio.Task] = None

    async def start(self, interval_ms: Optional[int] = None) -> None:
        """
        Take the lock and start the timers.

        Raises:
            LockHeldError: another live daemon owns the lock
        """
        await self.runtime.lock.acquire_or_raise()

        try:
            await self.runtime.store.bulk_set({
                DAEMON_PID_KEY: str(os.getpid()),
                DAEMON_STATUS_KEY: STATUS_ACTIVE,
            })
        except StoreError as e:
            logger.error(f"[Daemon] Could not publish daemon PID: {e}")

        await self._tick()

        interval_ms = (
            interval_ms
            or self.settings.refresh_interval_ms
            or self.cycle.last_config.update_interval * 1000
        )
        self.cycle.is_running = True
        self.cycle.interval_ms = interval_ms
        self._refresh_task = asyncio.create_task(self._refresh_loop(interval_ms / 1000.0))

        if self.settings.auto_recovery:
            self.runtime.coordinator.start_monitoring(self.settings.monitoring_interval_ms)
        else:
            self.runtime.freshness.start_monitoring(self.settings.monitoring_interval_ms)

        self._install_signal_handlers()
        logger.info(f"[Daemon] Started (PID {os.getpid()}, interval {interval_ms}ms)")

    async def wait_closed(self) -> None:
        await self._stopped.wait()

    async def shutdown(self, reason: str = "requested") -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info(f"[Daemon] Shutting down ({reason})")

        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        tick_tasks = list(self._tick_tasks)
        for task in tick_tasks:
            task.cancel()
        await asyncio.gather(*tick_tasks, return_exceptions=True)
        await self.runtime.coordinator.stop_monitoring()
        await self.runtime.freshness.stop_monitoring()
        self.cycle.is_running = False

        try:
            await self.runtime.lock.release()
        except OSError as e:
            logger.warning(f"[Daemon] Failed to release lock: {e}")

        try:
            await self.runtime.store.set(DAEMON_STATUS_KEY, STATUS_STOPPED)
        except StoreError as e:
            logger.warning(f"[Daemon] Could not publish stopped status: {e}")

        self._stopped.set()

    # =========================================================================
    # Timers
    # =========================================================================

    async def _refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self.cycle.in_flight:
                self.cycle.skipped_ticks += 1
                logger.debug("[Daemon] Cycle still running, tick skipped")
                continue
            task = asyncio.create_task(self._tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)

    async def _tick(self) -> None:
        await self.cycle.run_once()
        await self._publish_pid()
        try:
            await self.runtime.lock.refresh()
            await self.write_status_file()
        except OSError as e:
            logger.warning(f"[Daemon] Post-cycle bookkeeping failed: {e}")

    async def _publish_pid(self) -> None:
        """Put daemon_pid back if `clear` or a tmux server restart removed it."""
        pid = str(os.getpid())
        try:
            if await self.runtime.store.get(DAEMON_PID_KEY) != pid:
                await self.runtime.store.set(DAEMON_PID_KEY, pid)
                logger.info(f"[Daemon] Re-published daemon PID {pid}")
        except StoreError as e:
            logger.warning(f"[Daemon] Could not re-publish daemon PID: {e}")

    # =========================================================================
    # Status file
    # =========================================================================

    def snapshot(self) -> Dict[str, Any]:
        usage = self.cycle.last_usage
        status = self.cycle.get_status()
        return {
            "pid": os.getpid(),
            "written_at": time.time(),
            "status": status,
            "cache": self.cycle.get_cache_metrics(),
            "errors": self.cycle.ledger.stats(),
            "reliability": self.runtime.coordinator.get_statistics(),
            "process_health": self.runtime.health.evaluate(
                update_count=status["update_count"],
                error_count=status["error_count"],
                burn_rate=usage.burn_rate if usage else 0.0,
            ).to_dict(),
        }

    async def write_status_file(self) -> None:
        path = self.settings.status_file
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "w") as f:
            await f.write(json.dumps(self.snapshot(), indent=2))

    # =========================================================================
    # Signals
    # =========================================================================

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, functools.partial(self._handle_signal, sig))
            except NotImplementedError:
                logger.warning(f"[Daemon] Signal handlers unsupported on this platform ({sig.name})")

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self.shutdown(f"signal {sig.name}"))


# =============================================================================
# Helpers for one-shot commands
# =============================================================================


async def read_status_file(path: Path) -> Optional[Dict[str, Any]]:
    try:
        async with aiofiles.open(path, "r") as f:
            content = await f.read()
    except FileNotFoundError:
        return None
    try:
        return json.loads(content) if content else None
    except json.JSONDecodeError as e:
        logger.warning(f"[Daemon] Unreadable status file {path}: {e}")
        return None


async def stop_daemon(runtime: Runtime, timeout: float = 10.0) -> Optional[int]:
    """
    Terminate the daemon owning the instance lock.

    Returns:
        The PID that was signalled, or None if no live daemon was found
    """
    info = await runtime.lock.read_info()
    stopped_pid = None
    if info is not None and info.owner_pid != os.getpid() and pid_alive(info.owner_pid):
        loop = asyncio.get_running_loop()

        def _terminate() -> None:
            try:
                proc = psutil.Process(info.owner_pid)
                proc.terminate()
                proc.wait(timeout=timeout)
            except psutil.NoSuchProcess:
                pass
            except psutil.TimeoutExpired:
                logger.warning(f"[Daemon] PID {info.owner_pid} did not exit within {timeout}s, killing")
                proc.kill()

        await loop.run_in_executor(None, _terminate)
        stopped_pid = info.owner_pid

    try:
        await runtime.store.set(DAEMON_STATUS_KEY, STATUS_STOPPED)
    except StoreError as e:
        logger.warning(f"[Daemon] Could not publish stopped status: {e}")
    return stopped_pid
