"""
Display configuration read from tmux user options.

Users tune the status line from tmux.conf:

    set -g @ccusage_update_interval 5
    set -g @ccusage_token_limit 200000
    set -g @ccusage_warning_threshold_1 60
    set -g @ccusage_warning_threshold_2 85
    set -g @ccusage_time_warning_1 90
    set -g @ccusage_time_warning_2 20
    set -g @ccusage_time_format verbose
    set -g @ccusage_cost_format compact
    set -g @ccusage_token_format full

Options that are missing or fail validation keep their defaults.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from claude_live.core.errors import ConfigInvalidError

logger = logging.getLogger(__name__)

TIME_FORMATS = ("compact", "verbose", "short")
COST_FORMATS = ("currency", "number", "compact")
TOKEN_FORMATS = ("compact", "full", "short")


@dataclass(frozen=True)
class DisplayConfig:
    update_interval: int = 10
    """Seconds between refresh cycles."""

    token_limit: int = 140000
    usage_warning_thresholds: Tuple[int, int] = (70, 90)
    """Usage percent at which the level becomes warning, then danger."""

    time_warning_thresholds: Tuple[int, int] = (60, 30)
    """Minutes remaining at which the level becomes warning, then danger."""

    time_format: str = "compact"
    cost_format: str = "currency"
    token_format: str = "compact"

    def validate(self) -> List[str]:
        """Return a list of problems; empty means valid."""
        problems: List[str] = []
        if not 1 <= self.update_interval <= 3600:
            problems.append("update_interval must be between 1 and 3600 seconds")
        if self.token_limit < 1000:
            problems.append("token_limit must be at least 1000")
        first, second = self.usage_warning_thresholds
        if not (0 <= first <= 100 and 0 <= second <= 100):
            problems.append("usage warning thresholds must be between 0 and 100")
        if first >= second:
            problems.append("first usage warning threshold must be lower than the second")
        time_first, time_second = self.time_warning_thresholds
        if time_first <= 0 or time_second <= 0:
            problems.append("time warning thresholds must be positive")
        if time_first <= time_second:
            problems.append("first time warning threshold must be greater than the second")
        if self.time_format not in TIME_FORMATS:
            problems.append(f"time_format must be one of {', '.join(TIME_FORMATS)}")
        if self.cost_format not in COST_FORMATS:
            problems.append(f"cost_format must be one of {', '.join(COST_FORMATS)}")
        if self.token_format not in TOKEN_FORMATS:
            problems.append(f"token_format must be one of {', '.join(TOKEN_FORMATS)}")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _parse_int(options: Dict[str, str], name: str) -> Optional[int]:
    raw = options.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[Config] Ignoring @ccusage_{name}={raw!r}: not an integer")
        return None


@dataclass
class DisplayConfigLoader:
    """Builds a DisplayConfig from the store's option table."""

    store: Any
    defaults: DisplayConfig = field(default_factory=DisplayConfig)

    async def load(self) -> DisplayConfig:
        """
        Read every @ccusage_* option in one store call and apply valid overrides.

        Raises:
            StoreError: tmux could not be queried
            ConfigInvalidError: the assembled configuration is inconsistent
        """
        options = await self.store.enumerate()
        config = self.from_options(options, self.defaults)
        problems = config.validate()
        if problems:
            raise ConfigInvalidError(f"Invalid display configuration: {'; '.join(problems)}", problems)
        return config

    @staticmethod
    def from_options(options: Dict[str, str], defaults: Optional[DisplayConfig] = None) -> DisplayConfig:
        config = defaults or DisplayConfig()
        overrides: Dict[str, Any] = {}

        interval = _parse_int(options, "update_interval")
        if interval is not None:
            if 1 <= interval <= 3600:
                overrides["update_interval"] = interval
            else:
                logger.warning(f"[Config] Ignoring update_interval={interval}: must be 1..3600")

        token_limit = _parse_int(options, "token_limit")
        if token_limit is not None:
            if token_limit >= 1000:
                overrides["token_limit"] = token_limit
            else:
                logger.warning(f"[Config] Ignoring token_limit={token_limit}: must be >= 1000")

        first = _parse_int(options, "warning_threshold_1")
        second = _parse_int(options, "warning_threshold_2")
        if first is not None or second is not None:
            candidate = (
                first if first is not None else config.usage_warning_thresholds[0],
                second if second is not None else config.usage_warning_thresholds[1],
            )
            if 0 <= candidate[0] <= 100 and 0 <= candidate[1] <= 100 and candidate[0] < candidate[1]:
                overrides["usage_warning_thresholds"] = candidate
            else:
                logger.warning(f"[Config] Ignoring usage warning thresholds {candidate}")

        time_first = _parse_int(options, "time_warning_1")
        time_second = _parse_int(options, "time_warning_2")
        if time_first is not None or time_second is not None:
            candidate = (
                time_first if time_first is not None else config.time_warning_thresholds[0],
                time_second if time_second is not None else config.time_warning_thresholds[1],
            )
            if candidate[0] > candidate[1] > 0:
                overrides["time_warning_thresholds"] = candidate
            else:
                logger.warning(f"[Config] Ignoring time warning thresholds {candidate}")

        for name, allowed in (
            ("time_format", TIME_FORMATS),
            ("cost_format", COST_FORMATS),
            ("token_format", TOKEN_FORMATS),
        ):
            value = options.get(name)
            if not value:
                continue
            if value in allowed:
                overrides[name] = value
            else:
                logger.warning(f"[Config] Ignoring {name}={value!r}: expected one of {allowed}")

        return replace(config, **overrides) if overrides else config
