"""Tests for process health grading."""

import pytest

from claude_live.core.health_checker import HealthChecker, MetricStatus, grade
from conftest import ManualClock


@pytest.mark.unit
@pytest.mark.parametrize(
    "value, expected",
    [(1, MetricStatus.HEALTHY), (5, MetricStatus.WARNING), (10, MetricStatus.CRITICAL)],
)
def test_grade(value, expected):
    assert grade(value, 5, 10) == expected


@pytest.mark.unit
def test_healthy_process(monkeypatch):
    monkeypatch.setattr(HealthChecker, "memory_mb", staticmethod(lambda pid=None: 20.0))
    clock = ManualClock()
    checker = HealthChecker(clock=clock)
    clock.advance(3600)

    health = checker.evaluate(update_count=100, error_count=1, burn_rate=300)
    metrics = {m.name: m for m in health.metrics}

    assert health.status == MetricStatus.HEALTHY
    assert metrics["uptime_hours"].value == 1.0
    assert metrics["error_rate"].value == pytest.approx(0.99)
    assert metrics["memory_mb"].value == 20.0


@pytest.mark.unit
def test_worst_metric_wins(monkeypatch):
    monkeypatch.setattr(HealthChecker, "memory_mb", staticmethod(lambda pid=None: None))
    health = HealthChecker(clock=ManualClock()).evaluate(update_count=10, error_count=10, burn_rate=6000)

    assert health.status == MetricStatus.CRITICAL
    assert "memory_mb" not in {m.name for m in health.metrics}
    assert health.to_dict()["status"] == "critical"


@pytest.mark.unit
def test_memory_probe_reads_current_process():
    assert HealthChecker.memory_mb() > 0
