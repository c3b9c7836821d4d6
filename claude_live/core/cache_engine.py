"""
Single-slot output cache with an adaptive TTL.

The cache remembers the last (config fingerprint, data fingerprint,
published values) triple. A lookup hits only when both fingerprints match
and the entry is younger than the current TTL. The TTL adapts to how often
the data really changes and to how expensive recomputation is.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# Adaptive TTL tuning
# =============================================================================

DEFAULT_TTL_MS = 30000
MIN_TTL_MS = 5000
MAX_TTL_MS = 120000

OUTCOME_WINDOW = 20            # recent cycles considered
MIN_SAMPLES = 3                # no adjustment before this many outcomes
HIGH_CHANGE_RATIO = 0.8        # miss ratio above which TTL shrinks
LOW_CHANGE_RATIO = 0.3         # miss ratio below which TTL grows
SLOW_COMPUTE_MS = 1000.0       # average miss compute time that biases growth
MAX_STEP_RATIO = 0.25          # largest single adjustment, relative to current TTL


@dataclass
class CycleOutcome:
    was_hit: bool
    compute_time_ms: float = 0.0


@dataclass
class CacheEntry:
    config_fingerprint: str
    data_fingerprint: str
    published_values: Dict[str, str]
    stored_at: float
    adaptive_ttl_ms: int


@dataclass
class AdaptiveTTLState:
    current_ttl_ms: int = DEFAULT_TTL_MS
    recent_outcomes: Deque[CycleOutcome] = field(
        default_factory=lambda: deque(maxlen=OUTCOME_WINDOW)
    )

    @property
    def change_frequency(self) -> float:
        if not self.recent_outcomes:
            return 0.0
        misses = sum(1 for o in self.recent_outcomes if not o.was_hit)
        return misses / len(self.recent_outcomes)

    @property
    def average_compute_time_ms(self) -> float:
        misses = [o.compute_time_ms for o in self.recent_outcomes if not o.was_hit]
        if not misses:
            return 0.0
        return sum(misses) / len(misses)


class CacheEngine:
    """
    Holds at most one CacheEntry and the adaptive TTL bookkeeping.

    Owned exclusively by the refresh cycle; not safe to share between
    concurrent writers.
    """

    def __init__(
        self,
        base_ttl_ms: int = DEFAULT_TTL_MS,
        min_ttl_ms: int = MIN_TTL_MS,
        max_ttl_ms: int = MAX_TTL_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_ttl_ms = base_ttl_ms
        self.min_ttl_ms = min_ttl_ms
        self.max_ttl_ms = max_ttl_ms
        self._clock = clock
        self._entry: Optional[CacheEntry] = None
        self._state = AdaptiveTTLState(current_ttl_ms=base_ttl_ms)
        self.hits = 0
        self.misses = 0

    @property
    def ttl_ms(self) -> int:
        return self._state.current_ttl_ms

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    def lookup(self, config_fp: str, data_fp: str) -> Optional[Dict[str, str]]:
        """Return the cached values on a hit, None on a miss."""
        entry = self._entry
        if entry is None:
            return None

        age_ms = (self._clock() - entry.stored_at) * 1000
        if age_ms >= self._state.current_ttl_ms:
            logger.debug(f"[Cache] Entry expired after {age_ms:.0f}ms (ttl={self._state.current_ttl_ms}ms)")
            self._entry = None
            return None

        if entry.config_fingerprint != config_fp or entry.data_fingerprint != data_fp:
            return None
        return dict(entry.published_values)

    def store(
        self,
        config_fp: str,
        data_fp: str,
        values: Dict[str, str],
        compute_time_ms: float,
    ) -> None:
        self.misses += 1
        self._update_ttl(CycleOutcome(was_hit=False, compute_time_ms=compute_time_ms))
        self._entry = CacheEntry(
            config_fingerprint=config_fp,
            data_fingerprint=data_fp,
            published_values=dict(values),
            stored_at=self._clock(),
            adaptive_ttl_ms=self._state.current_ttl_ms,
        )

    def record_hit(self) -> None:
        self.hits += 1
        self._update_ttl(CycleOutcome(was_hit=True))

    def clear(self) -> None:
        self._entry = None
        self._state = AdaptiveTTLState(current_ttl_ms=self.base_ttl_ms)
        self.hits = 0
        self.misses = 0

    def metrics(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        entry_age = None
        if self._entry is not None:
            entry_age = round((self._clock() - self._entry.stored_at) * 1000)
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 3) if total else 0.0,
            "current_ttl_ms": self._state.current_ttl_ms,
            "change_frequency": round(self._state.change_frequency, 3),
            "average_compute_time_ms": round(self._state.average_compute_time_ms, 1),
            "entry_age_ms": entry_age,
        }

    # =========================================================================
    # Adaptive TTL
    # =========================================================================

    def _update_ttl(self, outcome: CycleOutcome) -> None:
        state = self._state
        state.recent_outcomes.append(outcome)
        if len(state.recent_outcomes) < MIN_SAMPLES:
            return

        current = state.current_ttl_ms
        target = current
        change_frequency = state.change_frequency
        if change_frequency > HIGH_CHANGE_RATIO:
            target = self.min_ttl_ms
        elif change_frequency < LOW_CHANGE_RATIO:
            target = self.max_ttl_ms

        # expensive recomputation: a shrink becomes a hold, a hold becomes growth
        if state.average_compute_time_ms > SLOW_COMPUTE_MS:
            if target < current:
                target = current
            elif target == current:
                target = self.max_ttl_ms

        max_step = max(1, int(current * MAX_STEP_RATIO))
        delta = max(-max_step, min(max_step, target - current))
        updated = min(self.max_ttl_ms, max(self.min_ttl_ms, current + delta))

        if updated != current:
            logger.debug(
                f"[Cache] TTL {current}ms -> {updated}ms "
                f"(change_frequency={change_frequency:.2f}, "
                f"avg_compute={state.average_compute_time_ms:.0f}ms)"
            )
            state.current_ttl_ms = updated
