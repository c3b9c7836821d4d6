"""Process-level health metrics for the status command."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import psutil

logger = logging.getLogger(__name__)

BURN_RATE_WARNING = 5000
BURN_RATE_CRITICAL = 10000
UPTIME_WARNING_HOURS = 48
UPTIME_CRITICAL_HOURS = 72
ERROR_RATE_WARNING = 5.0
ERROR_RATE_CRITICAL = 10.0
MEMORY_WARNING_MB = 50
MEMORY_CRITICAL_MB = 100


class MetricStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


_SEVERITY = [MetricStatus.HEALTHY, MetricStatus.WARNING, MetricStatus.CRITICAL]


def grade(value: float, warning_at: float, critical_at: float) -> MetricStatus:
    if value >= critical_at:
        return MetricStatus.CRITICAL
    if value >= warning_at:
        return MetricStatus.WARNING
    return MetricStatus.HEALTHY


@dataclass
class HealthMetric:
    name: str
    value: float
    status: MetricStatus
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value, "status": self.status.value, "message": self.message}


@dataclass
class ProcessHealth:
    status: MetricStatus
    metrics: List[HealthMetric] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "metrics": [m.to_dict() for m in self.metrics]}


class HealthChecker:
    """Grades uptime, error rate, burn rate and memory of the current process."""

    def __init__(self, started_at: Optional[float] = None, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.started_at = started_at if started_at is not None else clock()

    def evaluate(self, update_count: int, error_count: int, burn_rate: float = 0.0) -> ProcessHealth:
        uptime_hours = (self._clock() - self.started_at) / 3600
        attempts = update_count + error_count
        error_rate = (error_count / attempts * 100) if attempts else 0.0

        metrics = [
            HealthMetric(
                "uptime_hours", round(uptime_hours, 2),
                grade(uptime_hours, UPTIME_WARNING_HOURS, UPTIME_CRITICAL_HOURS),
                f"Running for {uptime_hours:.1f}h",
            ),
            HealthMetric(
                "error_rate", round(error_rate, 2),
                grade(error_rate, ERROR_RATE_WARNING, ERROR_RATE_CRITICAL),
                f"{error_count} errors in {attempts} cycles",
            ),
            HealthMetric(
                "burn_rate", burn_rate,
                grade(burn_rate, BURN_RATE_WARNING, BURN_RATE_CRITICAL),
                f"{burn_rate:.0f} tokens/min",
            ),
        ]

        memory_mb = self.memory_mb()
        if memory_mb is not None:
            metrics.append(HealthMetric(
                "memory_mb", round(memory_mb, 1),
                grade(memory_mb, MEMORY_WARNING_MB, MEMORY_CRITICAL_MB),
                f"RSS {memory_mb:.1f}MB",
            ))

        worst = max((m.status for m in metrics), key=_SEVERITY.index)
        return ProcessHealth(status=worst, metrics=metrics)

    @staticmethod
    def memory_mb(pid: Optional[int] = None) -> Optional[float]:
        try:
            return psutil.Process(pid or os.getpid()).memory_info().rss / (1024 * 1024)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.debug(f"[Health] Memory probe failed: {e}")
            return None
