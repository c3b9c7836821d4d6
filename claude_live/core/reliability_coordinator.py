"""
ReliabilityCoordinator - fuses worker liveness and data freshness.

This module provides:
- ReliabilityVerdict: High / Medium / Low / Critical
- derive_verdict: the pure (is_alive, freshness) -> verdict table
- ReliabilityReport: verdict plus the evidence and recommendations
- ReliabilityCoordinator: report generation, auto-recovery and the
  monitoring timer that escalates repeated failures

Verdict table:

    daemon alive + fresh    -> High
    daemon alive + stale    -> Medium
    exactly one of (daemon dead, data expired) -> Low
    daemon dead + expired   -> Critical
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from claude_live.core.freshness_tracker import Freshness, FreshnessSample, FreshnessTracker
from claude_live.core.process_watchdog import DaemonHealth, ProcessWatchdog

logger = logging.getLogger(__name__)


class ReliabilityVerdict(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    CRITICAL = "critical"


HEALTHY_VERDICTS = (ReliabilityVerdict.HIGH, ReliabilityVerdict.MEDIUM)
FAILING_VERDICTS = (ReliabilityVerdict.LOW, ReliabilityVerdict.CRITICAL)


def derive_verdict(is_alive: bool, freshness: Freshness) -> ReliabilityVerdict:
    expired = freshness == Freshness.EXPIRED
    if not is_alive and expired:
        return ReliabilityVerdict.CRITICAL
    if not is_alive or expired:
        return ReliabilityVerdict.LOW
    if freshness == Freshness.STALE:
        return ReliabilityVerdict.MEDIUM
    return ReliabilityVerdict.HIGH


def build_recommendations(
    verdict: ReliabilityVerdict,
    health: DaemonHealth,
    freshness: FreshnessSample,
) -> List[str]:
    if verdict == ReliabilityVerdict.CRITICAL:
        return [
            "🚨 CRITICAL: Immediate attention required",
            "Restart daemon immediately",
            "Check system logs for root cause",
            "Consider manual verification of ccusage installation",
        ]
    if verdict == ReliabilityVerdict.LOW:
        recommendations: List[str] = []
        if not health.is_alive:
            recommendations.append("⚠️ Restart daemon to restore monitoring")
            recommendations.extend(health.recovery_actions)
        if freshness.classification == Freshness.EXPIRED:
            recommendations.append("⚠️ Data is too old - verify daemon operation")
        return recommendations
    if verdict == ReliabilityVerdict.MEDIUM:
        return [
            "ℹ️ System functioning but data slightly stale",
            "Monitor daemon performance for potential issues",
        ]
    return []


@dataclass
class ReliabilityReport:
    verdict: ReliabilityVerdict
    daemon_health: DaemonHealth
    freshness: FreshnessSample
    recommendations: List[str] = field(default_factory=list)
    critical_issues: List[str] = field(default_factory=list)
    auto_actions_performed: List[str] = field(default_factory=list)
    generated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "daemon_health": self.daemon_health.to_dict(),
            "freshness": self.freshness.to_dict(),
            "recommendations": list(self.recommendations),
            "critical_issues": list(self.critical_issues),
            "auto_actions_performed": list(self.auto_actions_performed),
            "generated_at": self.generated_at,
        }


@dataclass
class RecoveryResult:
    success: bool
    actions_performed: List[str] = field(default_factory=list)
    report: Optional[ReliabilityReport] = None


class ReliabilityCoordinator:
    """Polls the watchdog and freshness tracker and drives recovery."""

    def __init__(
        self,
        watchdog: ProcessWatchdog,
        freshness: FreshnessTracker,
        auto_recovery: bool = True,
        critical_alert_threshold: int = 3,
        recovery_settle: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.watchdog = watchdog
        self.freshness = freshness
        self.auto_recovery = auto_recovery
        self.critical_alert_threshold = critical_alert_threshold
        self.recovery_settle = recovery_settle
        self._sleep = sleep
        self.consecutive_failures = 0
        self.last_report: Optional[ReliabilityReport] = None
        self._monitor_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Reporting
    # =========================================================================

    async def generate_report(self) -> ReliabilityReport:
        """
        Collect worker health and data freshness concurrently.

        Never raises: if either probe fails (e.g. tmux is unreachable) the
        report degrades to Critical.
        """
        health_result, freshness_result = await asyncio.gather(
            self.watchdog.perform_health_check(),
            self.freshness.classify(),
            return_exceptions=True,
        )

        failures = [r for r in (health_result, freshness_result) if isinstance(r, BaseException)]
        if failures:
            return self._fallback_report(failures, health_result)

        verdict = derive_verdict(health_result.is_alive, freshness_result.classification)
        report = ReliabilityReport(
            verdict=verdict,
            daemon_health=health_result,
            freshness=freshness_result,
            recommendations=build_recommendations(verdict, health_result, freshness_result),
            critical_issues=list(health_result.issues),
        )
        self.last_report = report
        return report

    def _fallback_report(self, failures: List[BaseException], health_result: Any) -> ReliabilityReport:
        issues = [f"Reliability check failed: {e}" for e in failures]
        logger.error(f"[Reliability] Report generation failed: {'; '.join(issues)}")
        if isinstance(health_result, DaemonHealth):
            health = health_result
        else:
            health = DaemonHealth(daemon_pid=None, is_alive=False, issues=list(issues))
        freshness = FreshnessSample(None, math.inf, Freshness.EXPIRED)
        report = ReliabilityReport(
            verdict=ReliabilityVerdict.CRITICAL,
            daemon_health=health,
            freshness=freshness,
            recommendations=build_recommendations(ReliabilityVerdict.CRITICAL, health, freshness),
            critical_issues=issues,
        )
        self.last_report = report
        return report

    # =========================================================================
    # Recovery
    # =========================================================================

    async def perform_auto_recovery(self, force: bool = False) -> RecoveryResult:
        """
        Invalidate expired data, make sure the worker runs, then re-verify.

        Args:
            force: Run even when auto-recovery is disabled

        Returns:
            RecoveryResult; success means the re-verified verdict is High or Medium
        """
        if not self.auto_recovery and not force:
            return RecoveryResult(success=True)

        actions: List[str] = []
        try:
            if await self.freshness.invalidate_if_expired():
                actions.append("Invalidated expired data")

            if not await self.watchdog.is_healthy():
                if await self.watchdog.ensure_running():
                    actions.append("Restarted daemon")
                else:
                    actions.append("Daemon restart failed")
        except Exception as e:
            logger.error(f"[Reliability] Auto-recovery failed: {e}")
            actions.append(f"Recovery error: {e}")
            return RecoveryResult(success=False, actions_performed=actions)

        if actions:
            await self._sleep(self.recovery_settle)

        report = await self.generate_report()
        report.auto_actions_performed = list(actions)
        success = report.verdict in HEALTHY_VERDICTS
        if success:
            self.consecutive_failures = 0
        if actions:
            logger.info(
                f"[Reliability] Auto-recovery {'succeeded' if success else 'failed'}: "
                f"{', '.join(actions)} (verdict={report.verdict.value})"
            )
        return RecoveryResult(success=success, actions_performed=actions, report=report)

    async def force_system_recovery(self) -> ReliabilityReport:
        logger.warning("[Reliability] Forced system recovery initiated")
        result = await self.perform_auto_recovery(force=True)
        report = result.report or await self.generate_report()
        report.auto_actions_performed = list(result.actions_performed)
        return report

    # =========================================================================
    # Monitoring
    # =========================================================================

    async def check_once(self) -> ReliabilityReport:
        """One monitoring tick."""
        report = await self.generate_report()
        if report.verdict in FAILING_VERDICTS:
            self.consecutive_failures += 1
            logger.warning(
                f"[Reliability] Verdict {report.verdict.value} "
                f"(consecutive failures: {self.consecutive_failures})"
            )
            result = await self.perform_auto_recovery()
            if not result.success and self.consecutive_failures >= self.critical_alert_threshold:
                logger.critical(
                    f"[Reliability] {self.consecutive_failures} consecutive reliability failures; "
                    f"manual intervention required: {'; '.join(report.critical_issues) or report.verdict.value}"
                )
            if result.report is not None:
                report = result.report
        elif self.consecutive_failures:
            logger.info(f"[Reliability] Recovered after {self.consecutive_failures} failed check(s)")
            self.consecutive_failures = 0
        return report

    def start_monitoring(self, interval_ms: int = 15000) -> None:
        if self.is_monitoring:
            return
        self._monitor_task = asyncio.create_task(self._monitor_loop(interval_ms / 1000.0))
        logger.info(f"[Reliability] Monitoring every {interval_ms}ms")

    async def stop_monitoring(self) -> None:
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None
        logger.info("[Reliability] Monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "is_monitoring": self.is_monitoring,
            "last_check": self.last_report.generated_at if self.last_report else None,
            "last_verdict": self.last_report.verdict.value if self.last_report else None,
        }

    async def _monitor_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_once()
            except Exception as e:
                logger.error(f"[Reliability] Monitor loop error: {e}")
