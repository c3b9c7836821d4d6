"""
RefreshCycle - one tick of the status refresh pipeline.

    load display config -> fetch ccusage block -> fingerprints -> cache lookup
        hit:  replay cached values through the differential publisher
        miss: process -> format -> stamp (payload + timestamp, one write)
              or full republish when the stamp is unchanged -> cache store

Everything a tick needs lives on this object (cache, error ledger,
counters); nothing is module-global. Exceptions never escape run_once():
they are classified, counted and turned into a degraded publish.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from claude_live.clients.usage_client import UsageBlock, UsageClient
from claude_live.core.cache_engine import CacheEngine
from claude_live.core.display_config import DisplayConfig, DisplayConfigLoader
from claude_live.core.fingerprint import FingerprintHasher
from claude_live.core.freshness_tracker import FreshnessTracker
from claude_live.core.publisher import VariablePublisher
from claude_live.core.recovery_engine import (
    OperationContext,
    OperationTarget,
    RetryExecutor,
)
from claude_live.core.usage_processor import ProcessedUsage, UsageProcessor
from claude_live.display.variables import build_variable_map, degraded_variable_map

logger = logging.getLogger(__name__)


@dataclass
class RetryBudget:
    attempts: int
    backoff_ms: int


@dataclass
class CycleBudgets:
    config: RetryBudget = field(default_factory=lambda: RetryBudget(3, 1000))
    upstream: RetryBudget = field(default_factory=lambda: RetryBudget(2, 2000))
    store: RetryBudget = field(default_factory=lambda: RetryBudget(2, 500))


class RefreshCycle:
    """Runs refresh ticks and keeps their counters."""

    def __init__(
        self,
        store: Any,
        usage_client: UsageClient,
        executor: RetryExecutor,
        freshness: FreshnessTracker,
        cache: Optional[CacheEngine] = None,
        config_loader: Optional[DisplayConfigLoader] = None,
        processor: Optional[UsageProcessor] = None,
        hasher: Optional[FingerprintHasher] = None,
        budgets: Optional[CycleBudgets] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.usage_client = usage_client
        self.executor = executor
        self.freshness = freshness
        self.cache = cache or CacheEngine(clock=clock)
        self.config_loader = config_loader or DisplayConfigLoader(store)
        self.processor = processor or UsageProcessor(clock=clock)
        self.hasher = hasher or FingerprintHasher()
        self.publisher = VariablePublisher(store)
        self.budgets = budgets or CycleBudgets()
        self._clock = clock

        self._in_flight = False
        self.is_running = False
        self.interval_ms: Optional[int] = None
        self.update_count = 0
        self.skipped_ticks = 0
        self.last_update_time: Optional[float] = None
        self.last_config: DisplayConfig = self.config_loader.defaults
        self.last_usage: Optional[ProcessedUsage] = None

    @property
    def ledger(self):
        return self.executor.ledger

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # =========================================================================
    # Tick
    # =========================================================================

    async def run_once(self) -> bool:
        """
        Run one refresh cycle.

        Returns:
            True if the cycle completed, False if it was skipped (another cycle
            in flight) or ended in a degraded publish
        """
        if self._in_flight:
            self.skipped_ticks += 1
            logger.debug("[Refresh] Previous cycle still in flight, skipping tick")
            return False

        self._in_flight = True
        try:
            await self._cycle()
            self.update_count += 1
            self.last_update_time = self._clock()
            return True
        except Exception as e:
            kind = self.executor.classifier.classify(e)
            # errors surfaced by the retry executor are already in the ledger
            if self.ledger.last_error is not e:
                self.ledger.record(kind, e)
            logger.error(f"[Refresh] Cycle failed ({kind.value}): {e}")
            await self._publish_degraded()
            return False
        finally:
            self._in_flight = False

    async def _cycle(self) -> None:
        config = await self.executor.with_retry(
            self.config_loader.load,
            OperationContext("load_config", OperationTarget.CONFIG),
            max_attempts=self.budgets.config.attempts,
            base_backoff_ms=self.budgets.config.backoff_ms,
            default=self.config_loader.defaults,
        )
        self.last_config = config

        snapshot: Optional[UsageBlock] = await self.executor.with_retry(
            lambda: self.usage_client.fetch_active_block(config.token_limit),
            OperationContext("fetch_usage", OperationTarget.UPSTREAM),
            max_attempts=self.budgets.upstream.attempts,
            base_backoff_ms=self.budgets.upstream.backoff_ms,
            default=None,
        )

        config_fp = self.hasher.fingerprint(config)
        data_fp = self.hasher.tolerant_hash(snapshot)

        cached = self.cache.lookup(config_fp, data_fp)
        if cached is not None:
            self.cache.record_hit()
            await self._store_call("replay", lambda: self.publisher.publish(cached), default=0)
            return

        started = time.perf_counter()
        usage = self.processor.process(snapshot, config)
        self.last_usage = usage
        values = build_variable_map(usage, config)
        compute_ms = (time.perf_counter() - started) * 1000

        stamped = await self._store_call("stamp", lambda: self.freshness.stamp(values), default=None)
        if stamped:
            self.publisher.remember(values)
        elif stamped is False:
            await self._store_call("publish", lambda: self.publisher.publish(values, full=True), default=0)

        self.cache.store(config_fp, data_fp, values, compute_ms)

    async def _store_call(self, name: str, operation, default: Any) -> Any:
        return await self.executor.with_retry(
            operation,
            OperationContext(name, OperationTarget.STORE),
            max_attempts=self.budgets.store.attempts,
            base_backoff_ms=self.budgets.store.backoff_ms,
            default=default,
        )

    async def _publish_degraded(self) -> None:
        try:
            await self.store.bulk_set(degraded_variable_map())
            self.publisher.forget()
            self.freshness.reset()
        except Exception as e:
            logger.error(f"[Refresh] Could not publish degraded payload: {e}")

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        next_update = None
        if self.is_running and self.interval_ms and self.last_update_time:
            next_update = self.last_update_time + self.interval_ms / 1000.0
        return {
            "is_running": self.is_running,
            "update_count": self.update_count,
            "last_update_time": self.last_update_time,
            "interval_ms": self.interval_ms,
            "next_update_time": next_update,
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
            "skipped_ticks": self.skipped_ticks,
            "error_count": self.ledger.total_errors,
            "last_error_time": self.ledger.last_error_time,
            "recovery_count": self.ledger.recoveries,
        }

    def get_cache_metrics(self) -> Dict[str, Any]:
        return self.cache.metrics()

    async def clear(self) -> int:
        """Unset every published key and reset in-process state."""
        cleared = await self.store.clear_all()
        self.cache.clear()
        self.hasher.reset()
        self.publisher.forget()
        self.freshness.reset()
        self.ledger.clear()
        self.update_count = 0
        self.skipped_ticks = 0
        self.last_usage = None
        self.last_update_time = None
        logger.info(f"[Refresh] Cleared {cleared} published keys and reset state")
        return cleared
