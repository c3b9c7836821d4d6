"""Formatting of processed usage into tmux variables."""

from claude_live.display.colors import ColorResolver
from claude_live.display.formatters import CostFormatter, TimeFormatter, TokenFormatter
from claude_live.display.variables import build_variable_map, degraded_variable_map

__all__ = [
    "ColorResolver",
    "CostFormatter",
    "TimeFormatter",
    "TokenFormatter",
    "build_variable_map",
    "degraded_variable_map",
]
