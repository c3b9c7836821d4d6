"""Turns a ccusage block into the numbers the status line displays."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from claude_live.clients.usage_client import TokenCounts, UsageBlock
from claude_live.core.display_config import DisplayConfig

logger = logging.getLogger(__name__)

COST_PER_TOKEN = 0.000015
BLOCK_DURATION_MINUTES = 300
BURN_RATE_MAX = 10000

WARNING_NORMAL = "normal"
WARNING_WARNING = "warning"
WARNING_DANGER = "danger"


@dataclass
class ProcessedUsage:
    is_active: bool = False
    total_tokens: int = 0
    cost_usd: float = 0.0
    remaining_minutes: float = 0.0
    session_remaining_minutes: int = 0
    usage_percent: Optional[float] = None
    tokens_remaining: Optional[int] = None
    token_limit: Optional[int] = None
    block_progress: int = 0
    burn_rate: float = 0.0
    cost_per_hour: float = 0.0
    warning_level: Optional[str] = None
    token_counts: Optional[TokenCounts] = None
    models: List[str] = field(default_factory=list)
    entries: Optional[int] = None

    @property
    def remaining_seconds(self) -> int:
        return int(self.remaining_minutes * 60)

    @property
    def session_remaining_seconds(self) -> int:
        return self.session_remaining_minutes * 60


def warning_level_for(usage_percent: float, thresholds=(70, 90)) -> str:
    warning_at, danger_at = thresholds
    if usage_percent >= danger_at:
        return WARNING_DANGER
    if usage_percent >= warning_at:
        return WARNING_WARNING
    return WARNING_NORMAL


class UsageProcessor:
    """
    Derives display numbers from a snapshot.

    Keeps the last plausible burn rate so an abnormal reading (negative,
    non-finite or above BURN_RATE_MAX tokens/min) is replaced rather than
    shown.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_valid_burn_rate: Optional[float] = None

    def process(self, block: Optional[UsageBlock], config: DisplayConfig) -> ProcessedUsage:
        if block is None:
            return self.default_usage(config)

        total_tokens = max(0, block.total_tokens)
        remaining_minutes = max(0.0, block.projection.remaining_minutes)
        burn_rate = self.validate_burn_rate(block.burn_rate.tokens_per_minute)

        limit = None
        if block.token_limit_status and block.token_limit_status.limit:
            limit = block.token_limit_status.limit
        elif config.token_limit:
            limit = config.token_limit

        usage_percent = None
        tokens_remaining = None
        warning_level = None
        if limit:
            raw_percent = total_tokens / limit * 100
            usage_percent = round(raw_percent, 2)
            tokens_remaining = max(0, limit - total_tokens)
            warning_level = warning_level_for(raw_percent, config.usage_warning_thresholds)

        elapsed = BLOCK_DURATION_MINUTES - remaining_minutes
        block_progress = min(100.0, max(0.0, elapsed / BLOCK_DURATION_MINUTES * 100))

        return ProcessedUsage(
            is_active=block.is_active,
            total_tokens=total_tokens,
            cost_usd=max(0.0, block.cost_usd),
            remaining_minutes=remaining_minutes,
            session_remaining_minutes=self.session_remaining_minutes(block.end_time),
            usage_percent=usage_percent,
            tokens_remaining=tokens_remaining,
            token_limit=limit,
            block_progress=round(block_progress),
            burn_rate=burn_rate,
            cost_per_hour=self.cost_per_hour(burn_rate),
            warning_level=warning_level,
            token_counts=block.token_counts,
            models=list(block.models),
            entries=block.entries,
        )

    @staticmethod
    def default_usage(config: DisplayConfig) -> ProcessedUsage:
        limit = config.token_limit or None
        return ProcessedUsage(
            usage_percent=0.0 if limit else None,
            tokens_remaining=limit,
            token_limit=limit,
            warning_level=WARNING_NORMAL if limit else None,
        )

    @staticmethod
    def cost_per_hour(burn_rate: float) -> float:
        if burn_rate <= 0:
            return 0.0
        return burn_rate * 60 * COST_PER_TOKEN

    def session_remaining_minutes(self, end_time: Optional[str]) -> int:
        if not end_time:
            return 0
        try:
            end = datetime.fromisoformat(end_time.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"[Processor] Unparseable end time {end_time!r}")
            return 0
        remaining_seconds = end.timestamp() - self._clock()
        if remaining_seconds <= 0:
            return 0
        return int(remaining_seconds // 60)

    def validate_burn_rate(self, burn_rate: float) -> float:
        if not math.isfinite(burn_rate) or burn_rate < 0 or burn_rate > BURN_RATE_MAX:
            fallback = self._last_valid_burn_rate if self._last_valid_burn_rate is not None else 0.0
            logger.warning(f"[Processor] Abnormal burn rate {burn_rate}, using {fallback}")
            return fallback
        self._last_valid_burn_rate = burn_rate
        return burn_rate
