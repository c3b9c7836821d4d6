"""
Environment variable readers with validation.

Every reader returns the default when the variable is unset. Malformed or
out-of-range values log a warning and also fall back to the default, so a
typo in the environment never stops the daemon from starting.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _raw(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_env_float(
    name: str,
    default: float,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> float:
    """
    Read a float from the environment.

    Args:
        name: Environment variable name
        default: Value used when unset or invalid
        min_val: Inclusive lower bound (optional)
        max_val: Inclusive upper bound (optional)

    Returns:
        The parsed value, or default
    """
    raw = _raw(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"[EnvConfig] {name}={raw!r} is not a number, using default {default}")
        return default
    if min_val is not None and value < min_val:
        logger.warning(f"[EnvConfig] {name}={value} below minimum {min_val}, using default {default}")
        return default
    if max_val is not None and value > max_val:
        logger.warning(f"[EnvConfig] {name}={value} above maximum {max_val}, using default {default}")
        return default
    return value


def get_env_int(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Read an integer from the environment (same fallback rules as get_env_float)."""
    raw = _raw(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[EnvConfig] {name}={raw!r} is not an integer, using default {default}")
        return default
    if min_val is not None and value < min_val:
        logger.warning(f"[EnvConfig] {name}={value} below minimum {min_val}, using default {default}")
        return default
    if max_val is not None and value > max_val:
        logger.warning(f"[EnvConfig] {name}={value} above maximum {max_val}, using default {default}")
        return default
    return value


def get_env_bool(name: str, default: bool) -> bool:
    raw = _raw(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning(f"[EnvConfig] {name}={raw!r} is not a boolean, using default {default}")
    return default


def get_env_str(name: str, default: str) -> str:
    raw = _raw(name)
    return default if raw is None else raw
