"""tmux colour selection for warning levels."""

from __future__ import annotations

import re
from typing import Mapping, Optional, Sequence

NORMAL_COLOR = "colour2"
WARNING_COLOR = "colour3"
DANGER_COLOR = "colour1"
INACTIVE_COLOR = "colour8"

DEFAULT_COLORS = {
    "normal": NORMAL_COLOR,
    "warning": WARNING_COLOR,
    "danger": DANGER_COLOR,
    "inactive": INACTIVE_COLOR,
}

COLOR_NAMES = {
    DANGER_COLOR: "red",
    NORMAL_COLOR: "green",
    WARNING_COLOR: "yellow",
    INACTIVE_COLOR: "grey",
}

VALID_COLOR_NAMES = ("red", "green", "yellow", "blue", "magenta", "cyan", "white", "black")

_SEVERITY = (NORMAL_COLOR, WARNING_COLOR, DANGER_COLOR)


class ColorResolver:
    """Maps usage, time remaining and warning levels to tmux colours."""

    @staticmethod
    def warning_color(level: Optional[str]) -> str:
        return DEFAULT_COLORS.get(level or "normal", NORMAL_COLOR)

    @staticmethod
    def from_usage(usage_percent: float, thresholds: Sequence[float] = (70, 90)) -> str:
        warning_at, danger_at = thresholds
        if usage_percent >= danger_at:
            return DANGER_COLOR
        if usage_percent >= warning_at:
            return WARNING_COLOR
        return NORMAL_COLOR

    @staticmethod
    def from_time_remaining(minutes: float, thresholds: Sequence[float] = (60, 30)) -> str:
        warning_at, danger_at = thresholds
        if minutes <= danger_at:
            return DANGER_COLOR
        if minutes <= warning_at:
            return WARNING_COLOR
        return NORMAL_COLOR

    @classmethod
    def from_combined(cls, usage_percent: float, minutes: float) -> str:
        """The more severe of the usage and time colours."""
        colors = (cls.from_usage(usage_percent), cls.from_time_remaining(minutes))
        return max(colors, key=_SEVERITY.index)

    @classmethod
    def from_usage_state(cls, is_active: bool, warning_level: Optional[str]) -> str:
        if not is_active:
            return INACTIVE_COLOR
        return cls.warning_color(warning_level)

    @staticmethod
    def custom_color(level: str, custom: Optional[Mapping[str, str]] = None) -> str:
        if custom and custom.get(level):
            return custom[level]
        return DEFAULT_COLORS.get(level, NORMAL_COLOR)

    @staticmethod
    def color_name(tmux_color: str) -> str:
        return COLOR_NAMES.get(tmux_color, "default")

    @staticmethod
    def is_valid_tmux_color(color: str) -> bool:
        if not color or not color.strip():
            return False
        if color in VALID_COLOR_NAMES:
            return True
        match = re.fullmatch(r"colour(\d+)", color)
        if match:
            return 0 <= int(match.group(1)) <= 255
        return re.fullmatch(r"#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})", color) is not None
