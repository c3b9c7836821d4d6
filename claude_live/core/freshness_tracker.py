"""
FreshnessTracker - Ages published data and replaces it when it expires.

The tmux status line re-reads options on its own schedule and cannot tell
whether a value is still current. Every successful publish therefore
carries a timestamp (@ccusage_last_update, epoch milliseconds), and this
module classifies its age:

    Fresh    age <= fresh_threshold            (default 30s)
    Stale    fresh_threshold < age <= stale    (default 300s)
    Expired  age > stale_threshold, or no timestamp at all

Classification is recomputed from the store on every call. Expired data
can be overwritten with an explicit degraded payload so the consumer
shows a warning instead of a frozen number.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from claude_live.core.fingerprint import canonical_digest

logger = logging.getLogger(__name__)

LAST_UPDATE_KEY = "last_update"
LAST_VALID_UPDATE_KEY = "last_valid_update"
DAEMON_STATUS_KEY = "daemon_status"
ERROR_MESSAGE_KEY = "error_message"
WARNING_COLOR_KEY = "warning_color"
DATA_AGE_KEY = "data_age"

EXPIRED_COLOR = "colour1"
STALE_COLOR = "colour3"


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass
class FreshnessSample:
    last_stamped_at: Optional[float]
    age_seconds: float
    classification: Freshness

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_stamped_at": self.last_stamped_at,
            "age_seconds": None if math.isinf(self.age_seconds) else round(self.age_seconds, 1),
            "classification": self.classification.value,
        }


def classify_age(age_seconds: float, fresh_threshold: float = 30.0, stale_threshold: float = 300.0) -> Freshness:
    if age_seconds <= fresh_threshold:
        return Freshness.FRESH
    if age_seconds <= stale_threshold:
        return Freshness.STALE
    return Freshness.EXPIRED


def _format_timestamp(epoch: Optional[float]) -> str:
    if epoch is None:
        return "Unknown"
    return datetime.fromtimestamp(epoch).strftime("%Y-%m-%d %H:%M:%S")


class FreshnessTracker:
    """Stamps publishes and classifies their age."""

    def __init__(
        self,
        store: Any,
        fresh_threshold: float = 30.0,
        stale_threshold: float = 300.0,
        auto_invalidate: bool = True,
        warning_prefix: str = "⚠️",
        restamp_after: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.fresh_threshold = fresh_threshold
        self.stale_threshold = stale_threshold
        self.auto_invalidate = auto_invalidate
        self.warning_prefix = warning_prefix
        # identical content is still re-stamped this often so a live worker's data never expires
        self.restamp_after = restamp_after if restamp_after is not None else stale_threshold / 2
        self._clock = clock
        self._last_digest: Optional[str] = None
        self._last_stamped_at: Optional[float] = None
        self._monitor_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Stamping
    # =========================================================================

    async def stamp(self, payload: Mapping[str, str], force: bool = False) -> bool:
        """
        Write payload plus a fresh timestamp in one bulk call.

        Skipped when the payload is identical to the last one stamped by this
        tracker and that stamp is younger than restamp_after.

        Returns:
            True if the store was written
        """
        digest = canonical_digest(dict(payload))
        now = self._clock()
        if (
            not force
            and digest == self._last_digest
            and self._last_stamped_at is not None
            and now - self._last_stamped_at < self.restamp_after
        ):
            return False

        await self.store.bulk_set({**payload, LAST_UPDATE_KEY: str(int(now * 1000))})
        self._last_digest = digest
        self._last_stamped_at = now
        return True

    def reset(self) -> None:
        self._last_digest = None
        self._last_stamped_at = None

    # =========================================================================
    # Classification
    # =========================================================================

    async def classify(self) -> FreshnessSample:
        raw = await self.store.get(LAST_UPDATE_KEY)
        stamped_at = None
        if raw:
            try:
                stamped_at = int(raw) / 1000.0
            except ValueError:
                logger.warning(f"[Freshness] Ignoring unparseable timestamp {raw!r}")

        if stamped_at is None:
            return FreshnessSample(None, math.inf, Freshness.EXPIRED)

        age = max(0.0, self._clock() - stamped_at)
        return FreshnessSample(stamped_at, age, classify_age(age, self.fresh_threshold, self.stale_threshold))

    def age_message(self, sample: FreshnessSample) -> str:
        if math.isinf(sample.age_seconds):
            return f"{self.warning_prefix} Data age unknown. Daemon may be stopped."
        return f"{self.warning_prefix} Data is {int(sample.age_seconds)}s old. Daemon may be stopped."

    def degraded_payload(self, sample: FreshnessSample, last_valid: Optional[str] = None) -> Dict[str, str]:
        age_text = "unknown" if math.isinf(sample.age_seconds) else f"{int(sample.age_seconds)}s ago"
        return {
            DAEMON_STATUS_KEY: "expired",
            ERROR_MESSAGE_KEY: self.age_message(sample),
            WARNING_COLOR_KEY: EXPIRED_COLOR,
            LAST_VALID_UPDATE_KEY: last_valid or _format_timestamp(sample.last_stamped_at),
            DATA_AGE_KEY: age_text,
        }

    async def invalidate_if_expired(self) -> bool:
        """
        Replace expired data with the degraded payload.

        Returns:
            True if the data was expired and has been overwritten
        """
        if not self.auto_invalidate:
            return False

        sample = await self.classify()
        if sample.classification != Freshness.EXPIRED:
            return False

        # an earlier invalidation already recorded when data was last valid
        last_valid = None
        if await self.store.get(DAEMON_STATUS_KEY) == "expired":
            last_valid = await self.store.get(LAST_VALID_UPDATE_KEY)

        logger.warning(f"[Freshness] {self.age_message(sample)} Publishing degraded payload")
        await self.stamp(self.degraded_payload(sample, last_valid), force=True)
        return True

    async def annotate(
        self,
        payload: Mapping[str, str],
        sample: Optional[FreshnessSample] = None,
    ) -> Dict[str, str]:
        """Return payload with freshness fields and warning markers added."""
        sample = sample or await self.classify()
        age = "unknown" if math.isinf(sample.age_seconds) else str(int(sample.age_seconds))
        annotated = {
            **payload,
            "data_freshness": sample.classification.value,
            "data_age_seconds": age,
        }

        if sample.classification == Freshness.STALE:
            annotated[WARNING_COLOR_KEY] = STALE_COLOR
            annotated["staleness_indicator"] = self.warning_prefix
        elif sample.classification == Freshness.EXPIRED:
            if self.auto_invalidate:
                annotated.update(self.degraded_payload(sample))
                annotated["recovery_suggestion"] = "Restart the daemon: claude-live start"
            else:
                annotated[WARNING_COLOR_KEY] = EXPIRED_COLOR
                annotated["staleness_indicator"] = "🚨"
                annotated[ERROR_MESSAGE_KEY] = self.age_message(sample)
        return annotated

    # =========================================================================
    # Monitoring
    # =========================================================================

    def start_monitoring(self, interval_ms: int = 10000) -> None:
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.create_task(self._monitor_loop(interval_ms / 1000.0))
        logger.info(f"[Freshness] Monitoring every {interval_ms}ms")

    async def stop_monitoring(self) -> None:
        if self._monitor_task is None:
            return
        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None

    async def _monitor_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.invalidate_if_expired()
            except Exception as e:
                logger.error(f"[Freshness] Monitor check failed: {e}")
