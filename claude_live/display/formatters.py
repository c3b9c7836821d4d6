"""Number-to-string rules for time, token and cost quantities."""

from __future__ import annotations

import math
import re

# =============================================================================
# Time
# =============================================================================


class TimeFormatter:
    """Formats minute counts: compact "2h5m", verbose "2 hours 5 minutes", short "2h"."""

    @classmethod
    def format(cls, minutes: float, style: str = "compact") -> str:
        normalized = max(0, math.floor(minutes))
        if style == "verbose":
            return cls._verbose(normalized)
        if style == "short":
            return cls._short(normalized)
        return cls._compact(normalized)

    @classmethod
    def format_seconds(cls, seconds: float) -> str:
        return cls.format(round(seconds / 60), "compact")

    @staticmethod
    def parse_hours_and_minutes(text: str) -> int:
        """Inverse of the compact form: "1h30m" -> 90. Unparseable parts count as 0."""
        hours = re.search(r"(\d+)h", text or "")
        minutes = re.search(r"(\d+)m", text or "")
        return (int(hours.group(1)) if hours else 0) * 60 + (int(minutes.group(1)) if minutes else 0)

    @staticmethod
    def _compact(minutes: int) -> str:
        hours, rest = divmod(minutes, 60)
        if hours == 0:
            return f"{rest}m"
        return f"{hours}h{rest}m"

    @staticmethod
    def _verbose(minutes: int) -> str:
        if minutes == 0:
            return "0 minutes"
        hours, rest = divmod(minutes, 60)
        rest_text = f"{rest} minute{'' if rest == 1 else 's'}"
        if hours == 0:
            return rest_text
        hours_text = f"{hours} hour{'' if hours == 1 else 's'}"
        return f"{hours_text} {rest_text}"

    @staticmethod
    def _short(minutes: int) -> str:
        if minutes < 60:
            return f"{minutes}m"
        return f"{int(round(minutes / 60))}h"


# =============================================================================
# Tokens
# =============================================================================

_UNITS = ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "k"))


class TokenFormatter:
    """Formats token counts: compact "1.5k", full "1,500", short "2k"."""

    @classmethod
    def format(cls, tokens: float, style: str = "compact") -> str:
        normalized = max(0, tokens)
        if style == "full":
            return f"{int(round(normalized)):,}"
        if style == "short":
            return cls._short(normalized)
        return cls._compact(normalized)

    @classmethod
    def format_with_unit(cls, tokens: float, singular: str, plural: str = "") -> str:
        unit = singular if tokens == 1 else (plural or singular)
        return f"{cls.format(tokens, 'compact')} {unit}"

    @staticmethod
    def parse_token_string(text: str) -> int:
        """Parse "1.5k", "2M tokens" or "1,234" back to an integer; 0 when unparseable."""
        if not text or not text.strip():
            return 0
        cleaned = re.sub(r"\s*tokens?\s*", "", text, flags=re.IGNORECASE).replace(",", "").strip()
        match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*([kKmMbB]?)", cleaned)
        if not match:
            return 0
        number = float(match.group(1))
        multiplier = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}.get(match.group(2).lower(), 1)
        return int(math.floor(number * multiplier))

    @staticmethod
    def usage_description(tokens: float, limit: float) -> str:
        if tokens > limit:
            return "Over limit"
        if tokens == limit:
            return "At limit"
        usage = tokens / limit
        if usage >= 0.7:
            return "Heavy usage"
        if usage >= 0.3:
            return "Moderate usage"
        return "Light usage"

    @staticmethod
    def _compact(tokens: float) -> str:
        if tokens < 1000:
            return str(int(math.floor(tokens)))
        for size, suffix in _UNITS:
            if tokens >= size or suffix == "k":
                scaled = tokens / size
                if scaled.is_integer() and scaled >= 100:
                    return f"{int(scaled)}{suffix}"
                return f"{scaled:.1f}{suffix}"
        return str(int(tokens))

    @staticmethod
    def _short(tokens: float) -> str:
        if tokens < 1000:
            return str(int(round(tokens)))
        for size, suffix in _UNITS:
            if tokens >= size or suffix == "k":
                return f"{int(round(tokens / size))}{suffix}"
        return str(int(tokens))


# =============================================================================
# Cost
# =============================================================================


class CostFormatter:
    """Formats USD amounts: currency "$1.50", number "1.50", compact "1.5$"."""

    @classmethod
    def format(cls, cost: float, style: str = "currency") -> str:
        normalized = max(0.0, cost)
        if style == "number":
            return f"{normalized:.2f}"
        if style == "compact":
            return cls._compact(normalized)
        return f"${normalized:.2f}"

    @staticmethod
    def format_with_precision(cost: float, precision: int) -> str:
        digits = max(0, min(4, int(precision)))
        return f"${max(0.0, cost):.{digits}f}"

    @staticmethod
    def parse_cost_string(text: str) -> float:
        if not text or not text.strip():
            return 0.0
        try:
            return max(0.0, float(text.replace("$", "").strip()))
        except ValueError:
            return 0.0

    @classmethod
    def format_per_hour(cls, cost_per_hour: float, style: str = "currency") -> str:
        return f"{cls.format(cost_per_hour, style)}/h"

    @classmethod
    def format_range(cls, low: float, high: float, style: str = "currency") -> str:
        if low == high:
            return cls.format(low, style)
        return f"{cls.format(low, style)}-{cls.format(high, style)}"

    @staticmethod
    def cost_level(cost: float) -> str:
        if cost <= 0:
            return "free"
        if cost <= 2:
            return "low"
        if cost <= 10:
            return "medium"
        if cost <= 30:
            return "high"
        return "very-high"

    @classmethod
    def format_savings(cls, savings: float) -> str:
        if savings == 0:
            return "No savings"
        if savings > 0:
            return f"Save {cls.format(savings)}"
        return f"Additional {cls.format(abs(savings))}"

    @staticmethod
    def _compact(cost: float) -> str:
        if cost == 0:
            return "0$"
        if float(cost).is_integer():
            return f"{int(cost)}$"
        text = f"{cost:.2f}"
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return f"{text}$"
