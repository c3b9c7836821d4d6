"""Tests for worker PID resolution, liveness probing and restarts."""

import json
import os
import time

import pytest

from claude_live.core.errors import StoreUnavailableError
from claude_live.core.freshness_tracker import FreshnessTracker
from claude_live.core.instance_lock import InstanceLock
from claude_live.core.process_watchdog import ProcessWatchdog, SubprocessWorkerController, WorkerState
from claude_live.core.reliability_coordinator import ReliabilityCoordinator
from conftest import FakeController, FakeProbe, FakeStore, ManualClock, SleepRecorder


def _watchdog(pid=None, alive=(), start_works=True, **kwargs):
    store = FakeStore({"daemon_pid": str(pid)} if pid is not None else {})
    probe = FakeProbe(alive)
    controller = FakeController(store, probe, start_works=start_works)
    clock = ManualClock()
    sleep = SleepRecorder()
    watchdog = ProcessWatchdog(store, controller, probe=probe, clock=clock, sleep=sleep, **kwargs)
    return watchdog, store, probe, controller, clock, sleep


@pytest.mark.asyncio
async def test_pid_is_cached_within_ttl():
    watchdog, store, _, _, clock, _ = _watchdog(pid=100)
    assert await watchdog.get_daemon_pid() == 100

    store.values["daemon_pid"] = "200"
    clock.advance(29)
    assert await watchdog.get_daemon_pid() == 100
    clock.advance(2)
    assert await watchdog.get_daemon_pid() == 200


@pytest.mark.asyncio
async def test_malformed_or_unreadable_pid_is_unknown():
    watchdog, store, _, _, _, _ = _watchdog()
    store.values["daemon_pid"] = "not-a-pid"
    assert await watchdog.get_daemon_pid() is None

    watchdog.clear_pid_cache()
    store.fail_with = StoreUnavailableError("tmux missing")
    assert await watchdog.get_daemon_pid() is None


@pytest.mark.unit
def test_invalid_pids_are_dead_without_probing():
    watchdog, _, probe, _, _, _ = _watchdog()
    assert watchdog.is_process_alive(None) is False
    assert watchdog.is_process_alive(0) is False
    assert watchdog.is_process_alive(-5) is False
    assert probe.probed == []


@pytest.mark.unit
def test_probe_errors_count_as_alive():
    watchdog, _, probe, _, _, _ = _watchdog()

    def _boom(pid):
        raise PermissionError("not allowed")

    probe.is_alive = _boom
    assert watchdog.is_process_alive(123) is True


@pytest.mark.asyncio
async def test_health_check_states():
    watchdog, _, _, _, _, _ = _watchdog()
    health = await watchdog.perform_health_check()
    assert health.state == WorkerState.UNKNOWN_PID
    assert health.issues == ["Daemon PID not found in tmux variables"]

    watchdog, _, _, _, _, _ = _watchdog(pid=100)
    health = await watchdog.perform_health_check()
    assert health.state == WorkerState.DEAD
    assert health.issues == ["Daemon process (PID: 100) is not running"]
    assert health.recovery_actions == ["Restart daemon automatically"]

    watchdog, _, _, _, _, _ = _watchdog(pid=100, alive=[100])
    health = await watchdog.perform_health_check()
    assert health.state == WorkerState.ALIVE
    assert health.issues == []


@pytest.mark.asyncio
async def test_health_check_never_restarts():
    watchdog, _, _, controller, _, _ = _watchdog(pid=100)
    await watchdog.perform_health_check()
    assert controller.starts == 0
    assert controller.stopped == []


@pytest.mark.asyncio
async def test_ensure_running_is_noop_when_healthy():
    watchdog, _, _, controller, _, sleep = _watchdog(pid=100, alive=[100])
    assert await watchdog.ensure_running() is True
    assert controller.starts == 0
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_restart_stops_cleans_and_starts():
    watchdog, store, _, controller, _, sleep = _watchdog(pid=100, alive=[100])
    assert await watchdog.restart() is True

    assert controller.stopped == [100]
    assert controller.cleanups == 1
    assert controller.starts == 1
    assert store.values["daemon_pid"] == "4242"
    assert sleep.calls == [watchdog.stop_settle, watchdog.start_settle]
    assert watchdog.restart_count == 1


@pytest.mark.asyncio
async def test_ensure_running_gives_up_after_max_attempts():
    watchdog, _, _, controller, _, sleep = _watchdog(
        pid=100, start_works=False, max_restart_attempts=3, restart_cooldown_ms=5000
    )
    assert await watchdog.ensure_running() is False
    assert controller.starts == 3
    assert sleep.calls.count(5.0) == 2


@pytest.mark.asyncio
async def test_ensure_running_recovers_dead_worker():
    watchdog, _, _, controller, _, _ = _watchdog(pid=100)
    assert await watchdog.ensure_running() is True
    assert controller.starts == 1
    # a dead worker is not signalled
    assert controller.stopped == []


# =============================================================================
# Live lock owner
# =============================================================================


class RecordingWorkerController(SubprocessWorkerController):
    """Real lock handling; records spawns instead of starting processes."""

    def __init__(self, lock):
        super().__init__(lock, command=["claude-live", "start"])
        self.spawned = 0

    async def start(self):
        self.spawned += 1


@pytest.mark.asyncio
async def test_lock_owner_stands_in_for_missing_pid(tmp_path):
    lock = InstanceLock("worker", tmp_path)
    await lock.acquire()
    store = FakeStore()
    watchdog = ProcessWatchdog(store, RecordingWorkerController(lock), lock=lock, sleep=SleepRecorder())

    assert await watchdog.get_daemon_pid() == os.getpid()
    assert await watchdog.is_healthy() is True


@pytest.mark.asyncio
async def test_abandoned_lock_is_not_a_worker(tmp_path):
    lock = InstanceLock("worker", tmp_path, is_alive=lambda pid: False)
    tmp_path.joinpath("worker.lock").write_text(
        json.dumps({"owner_pid": 999999, "timestamp": time.time(), "hostname": "test"})
    )
    watchdog = ProcessWatchdog(FakeStore(), RecordingWorkerController(lock), lock=lock, sleep=SleepRecorder())

    assert await watchdog.get_daemon_pid() is None


@pytest.mark.asyncio
async def test_cleanup_keeps_live_lock_and_removes_abandoned_one(tmp_path):
    live = InstanceLock("live", tmp_path)
    await live.acquire()
    await SubprocessWorkerController(live).cleanup()
    assert live.lock_path.exists()

    dead = InstanceLock("dead", tmp_path, is_alive=lambda pid: False)
    dead.lock_path.write_text(json.dumps({"owner_pid": 999999, "timestamp": time.time(), "hostname": "test"}))
    await SubprocessWorkerController(dead).cleanup()
    assert not dead.lock_path.exists()


@pytest.mark.asyncio
async def test_cleared_store_does_not_spawn_second_worker(tmp_path):
    lock = InstanceLock("worker", tmp_path)
    await lock.acquire()
    store = FakeStore({"daemon_pid": str(os.getpid())})
    controller = RecordingWorkerController(lock)
    watchdog = ProcessWatchdog(store, controller, lock=lock, sleep=SleepRecorder())
    coordinator = ReliabilityCoordinator(watchdog, FreshnessTracker(store), sleep=SleepRecorder())

    await store.clear_all()
    await FreshnessTracker(store).stamp({"total_tokens": "1"})
    report = await coordinator.check_once()

    assert controller.spawned == 0
    assert await lock.is_locked()
    assert report.daemon_health.is_alive
