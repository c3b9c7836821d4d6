"""
The variable set published to tmux.

Each key becomes a `@ccusage_<key>` option that status-line formats can
reference, e.g. `#{@ccusage_usage_percent}`.
"""

from __future__ import annotations

from typing import Dict

from claude_live.core.display_config import DisplayConfig
from claude_live.core.usage_processor import ProcessedUsage
from claude_live.display.colors import INACTIVE_COLOR, ColorResolver
from claude_live.display.formatters import CostFormatter, TimeFormatter, TokenFormatter

DAEMON_STATUS_KEY = "daemon_status"
ERROR_MESSAGE_KEY = "error_message"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_variable_map(usage: ProcessedUsage, config: DisplayConfig) -> Dict[str, str]:
    # @ccusage_token_limit doubles as the config option, so publish the configured value
    token_limit = config.token_limit
    tokens_remaining = usage.tokens_remaining if usage.tokens_remaining is not None else 0
    usage_percent = usage.usage_percent if usage.usage_percent is not None else 0.0
    warning_color = ColorResolver.from_usage_state(usage.is_active, usage.warning_level)

    return {
        "is_active": "true" if usage.is_active else "false",
        "total_tokens": str(usage.total_tokens),
        "cost_current": CostFormatter.format(usage.cost_usd, config.cost_format),
        "time_remaining": TimeFormatter.format(usage.remaining_minutes, config.time_format),
        "session_time_remaining": TimeFormatter.format(usage.session_remaining_minutes, config.time_format),
        "usage_percent": f"{usage_percent:.2f}%",
        "tokens_remaining": str(tokens_remaining),
        "burn_rate": _number(usage.burn_rate),
        "cost_per_hour": CostFormatter.format(usage.cost_per_hour, config.cost_format),
        "total_tokens_formatted": TokenFormatter.format(usage.total_tokens, config.token_format),
        "tokens_remaining_formatted": TokenFormatter.format(tokens_remaining, config.token_format),
        "token_limit_formatted": TokenFormatter.format(token_limit, config.token_format),
        "warning_level": usage.warning_level or "none",
        "warning_color": warning_color,
        "warning_color_name": ColorResolver.color_name(warning_color),
        "block_progress": str(usage.block_progress),
        "block_progress_percent": f"{usage.block_progress}%",
        "remaining_seconds": str(usage.remaining_seconds),
        "session_remaining_seconds": str(usage.session_remaining_seconds),
        "token_limit": str(token_limit),
        "burn_rate_formatted": f"{_number(usage.burn_rate)}/min",
        DAEMON_STATUS_KEY: "active",
        ERROR_MESSAGE_KEY: "",
    }


def degraded_variable_map(message: str = "Service unavailable") -> Dict[str, str]:
    """Explicit placeholder published when a cycle cannot produce real values."""
    return {
        "is_active": "false",
        "block_status": "unavailable",
        "total_tokens": "0",
        "total_tokens_formatted": "0",
        "usage_percent": "0.00%",
        "cost_current": "$0.00",
        "time_remaining": "--",
        "warning_color": INACTIVE_COLOR,
        "warning_level": "none",
        ERROR_MESSAGE_KEY: message,
    }
