"""Tests for reliability verdicts, reports and auto-recovery."""

import asyncio

import pytest

from claude_live.core.freshness_tracker import Freshness, FreshnessTracker
from claude_live.core.process_watchdog import ProcessWatchdog
from claude_live.core.reliability_coordinator import (
    ReliabilityCoordinator,
    ReliabilityVerdict,
    derive_verdict,
)
from claude_live.core.errors import StoreNoSessionError
from conftest import FakeController, FakeProbe, FakeStore, ManualClock, SleepRecorder


@pytest.mark.unit
@pytest.mark.parametrize(
    "is_alive, freshness, expected",
    [
        (True, Freshness.FRESH, ReliabilityVerdict.HIGH),
        (True, Freshness.STALE, ReliabilityVerdict.MEDIUM),
        (True, Freshness.EXPIRED, ReliabilityVerdict.LOW),
        (False, Freshness.FRESH, ReliabilityVerdict.LOW),
        (False, Freshness.STALE, ReliabilityVerdict.LOW),
        (False, Freshness.EXPIRED, ReliabilityVerdict.CRITICAL),
    ],
)
def test_verdict_table(is_alive, freshness, expected):
    assert derive_verdict(is_alive, freshness) == expected


def _system(alive_pid=None, stamped=True, auto_recovery=True, start_works=True):
    clock = ManualClock()
    sleep = SleepRecorder()
    store = FakeStore()
    probe = FakeProbe()
    if alive_pid is not None:
        store.values["daemon_pid"] = str(alive_pid)
        probe.alive.add(alive_pid)
    controller = FakeController(store, probe, start_works=start_works)
    watchdog = ProcessWatchdog(store, controller, probe=probe, clock=clock, sleep=sleep)
    freshness = FreshnessTracker(store, clock=clock)
    if stamped:
        store.values["last_update"] = str(int(clock.now * 1000))
    coordinator = ReliabilityCoordinator(
        watchdog, freshness, auto_recovery=auto_recovery, critical_alert_threshold=3, sleep=sleep
    )
    return coordinator, store, clock, controller


@pytest.mark.asyncio
async def test_healthy_report_has_no_recommendations():
    coordinator, _, _, _ = _system(alive_pid=100)
    report = await coordinator.generate_report()
    assert report.verdict == ReliabilityVerdict.HIGH
    assert report.recommendations == []
    assert report.critical_issues == []


@pytest.mark.asyncio
async def test_stale_report_recommends_monitoring():
    coordinator, _, clock, _ = _system(alive_pid=100)
    clock.advance(120)
    report = await coordinator.generate_report()
    assert report.verdict == ReliabilityVerdict.MEDIUM
    assert len(report.recommendations) == 2


@pytest.mark.asyncio
async def test_critical_report():
    coordinator, _, _, _ = _system(alive_pid=None, stamped=False)
    report = await coordinator.generate_report()
    assert report.verdict == ReliabilityVerdict.CRITICAL
    assert len(report.recommendations) == 4
    assert report.critical_issues == ["Daemon PID not found in tmux variables"]


@pytest.mark.asyncio
async def test_unreachable_store_degrades_to_critical():
    coordinator, store, _, _ = _system(alive_pid=100)
    store.fail_with = StoreNoSessionError("no server running")
    report = await coordinator.generate_report()
    assert report.verdict == ReliabilityVerdict.CRITICAL
    assert any("Reliability check failed" in issue for issue in report.critical_issues)


@pytest.mark.asyncio
async def test_auto_recovery_restarts_dead_daemon_and_invalidates():
    coordinator, store, clock, controller = _system(alive_pid=None, stamped=True)
    clock.advance(1000)
    coordinator.consecutive_failures = 2

    result = await coordinator.perform_auto_recovery()

    assert result.actions_performed == ["Invalidated expired data", "Restarted daemon"]
    assert controller.starts == 1
    assert store.values["daemon_status"] == "expired"
    assert result.success is True
    assert result.report.verdict in (ReliabilityVerdict.HIGH, ReliabilityVerdict.MEDIUM)
    assert coordinator.consecutive_failures == 0


@pytest.mark.asyncio
async def test_auto_recovery_is_idempotent_on_healthy_system():
    coordinator, store, _, controller = _system(alive_pid=100)
    writes_before = store.write_count

    first = await coordinator.perform_auto_recovery()
    second = await coordinator.perform_auto_recovery()

    assert first.success and second.success
    assert first.actions_performed == [] and second.actions_performed == []
    assert controller.starts == 0
    assert store.write_count == writes_before


@pytest.mark.asyncio
async def test_auto_recovery_disabled_does_nothing():
    coordinator, _, _, controller = _system(alive_pid=None, stamped=False, auto_recovery=False)
    result = await coordinator.perform_auto_recovery()
    assert result.success is True
    assert result.actions_performed == []
    assert controller.starts == 0


@pytest.mark.asyncio
async def test_failed_restart_is_reported():
    coordinator, _, _, controller = _system(alive_pid=None, stamped=True, start_works=False)
    result = await coordinator.perform_auto_recovery()
    assert "Daemon restart failed" in result.actions_performed
    assert result.success is False
    assert controller.starts == coordinator.watchdog.max_restart_attempts


@pytest.mark.asyncio
async def test_repeated_failures_escalate(caplog):
    coordinator, _, _, _ = _system(alive_pid=None, stamped=False, start_works=False)

    for _ in range(3):
        report = await coordinator.check_once()
        assert report.verdict in (ReliabilityVerdict.LOW, ReliabilityVerdict.CRITICAL)

    assert coordinator.consecutive_failures == 3
    assert any(record.levelname == "CRITICAL" for record in caplog.records)


@pytest.mark.asyncio
async def test_force_recovery_runs_when_auto_recovery_disabled():
    coordinator, _, _, controller = _system(alive_pid=None, stamped=True, auto_recovery=False)
    report = await coordinator.force_system_recovery()
    assert controller.starts == 1
    assert "Restarted daemon" in report.auto_actions_performed
    assert coordinator.get_statistics()["last_verdict"] == report.verdict.value


@pytest.mark.asyncio
async def test_monitoring_loop_restarts_dead_daemon():
    coordinator, _, _, controller = _system(alive_pid=None, stamped=True)

    coordinator.start_monitoring(interval_ms=10)
    assert coordinator.is_monitoring
    await asyncio.sleep(0.1)
    await coordinator.stop_monitoring()

    assert controller.starts == 1
    assert not coordinator.is_monitoring
    assert coordinator.consecutive_failures == 0
