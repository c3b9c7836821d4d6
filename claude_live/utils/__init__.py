"""Shared helpers for claude_live."""

from claude_live.utils.env_config import (
    get_env_bool,
    get_env_float,
    get_env_int,
    get_env_str,
)

__all__ = [
    "get_env_bool",
    "get_env_float",
    "get_env_int",
    "get_env_str",
]
