"""
Centralized Daemon Settings for tmux-claude-live
================================================

Single source of truth for the timeouts, retry budgets, thresholds and paths
used by the refresh daemon. Every value can be overridden through a
CLAUDE_LIVE_ environment variable. Invalid values log a warning and keep the
default (never crash on bad config).

Environment Variables:
----------------------

### Timeouts
- CLAUDE_LIVE_UPSTREAM_TIMEOUT: ccusage invocation timeout (default: 15.0s)
- CLAUDE_LIVE_STORE_TIMEOUT: single tmux option read/write timeout (default: 5.0s)
- CLAUDE_LIVE_STORE_BULK_TIMEOUT: chained tmux write timeout (default: 30.0s)

### Cache
- CLAUDE_LIVE_CACHE_BASE_TTL_MS: starting adaptive TTL (default: 30000)
- CLAUDE_LIVE_CACHE_MIN_TTL_MS / CLAUDE_LIVE_CACHE_MAX_TTL_MS: TTL bounds (default: 5000 / 120000)

### Retry budgets
- CLAUDE_LIVE_CONFIG_ATTEMPTS / CLAUDE_LIVE_CONFIG_BACKOFF_MS (default: 3 / 1000)
- CLAUDE_LIVE_UPSTREAM_ATTEMPTS / CLAUDE_LIVE_UPSTREAM_BACKOFF_MS (default: 2 / 2000)
- CLAUDE_LIVE_STORE_ATTEMPTS / CLAUDE_LIVE_STORE_BACKOFF_MS (default: 2 / 500)

### Freshness
- CLAUDE_LIVE_FRESH_THRESHOLD: age still considered fresh (default: 30.0s)
- CLAUDE_LIVE_STALE_THRESHOLD: age after which data is expired (default: 300.0s)
- CLAUDE_LIVE_AUTO_INVALIDATE: replace expired data with a degraded payload (default: true)

### Watchdog
- CLAUDE_LIVE_PID_CACHE_TTL: how long a resolved worker PID is trusted (default: 30.0s)
- CLAUDE_LIVE_MAX_RESTART_ATTEMPTS: restarts per ensure_running call (default: 3)
- CLAUDE_LIVE_RESTART_COOLDOWN_MS: pause between restart attempts (default: 5000)

### Reliability
- CLAUDE_LIVE_MONITORING_INTERVAL_MS: coordinator tick (default: 15000)
- CLAUDE_LIVE_CRITICAL_ALERT_THRESHOLD: consecutive failures before escalation (default: 3)
- CLAUDE_LIVE_AUTO_RECOVERY: run auto-recovery on Low/Critical verdicts (default: true)

### Lock and paths
- CLAUDE_LIVE_LOCK_NAME / CLAUDE_LIVE_LOCK_DIR / CLAUDE_LIVE_LOCK_TIMEOUT
- CLAUDE_LIVE_STATE_DIR: status file location (default: ~/.claude-live)
- CLAUDE_LIVE_LOG_FILE: optional log file
- CLAUDE_LIVE_LOG_LEVEL: root log level (default: INFO)

Usage:
    from claude_live.config import get_settings

    settings = get_settings()
    await asyncio.wait_for(run(), timeout=settings.upstream_timeout)
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from claude_live.utils.env_config import (
    get_env_bool,
    get_env_float,
    get_env_int,
    get_env_str,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DEFAULT VALUES
# =============================================================================

# Timeouts (seconds)
_DEFAULT_UPSTREAM_TIMEOUT = 15.0
_DEFAULT_STORE_TIMEOUT = 5.0
_DEFAULT_STORE_BULK_TIMEOUT = 30.0

# Adaptive cache TTL (milliseconds)
_DEFAULT_CACHE_BASE_TTL_MS = 30000
_DEFAULT_CACHE_MIN_TTL_MS = 5000
_DEFAULT_CACHE_MAX_TTL_MS = 120000

# Retry budgets
_DEFAULT_CONFIG_ATTEMPTS = 3
_DEFAULT_CONFIG_BACKOFF_MS = 1000
_DEFAULT_UPSTREAM_ATTEMPTS = 2
_DEFAULT_UPSTREAM_BACKOFF_MS = 2000
_DEFAULT_STORE_ATTEMPTS = 2
_DEFAULT_STORE_BACKOFF_MS = 500

# Freshness thresholds (seconds)
_DEFAULT_FRESH_THRESHOLD = 30.0
_DEFAULT_STALE_THRESHOLD = 300.0
_DEFAULT_WARNING_PREFIX = "⚠️"

# Watchdog
_DEFAULT_PID_CACHE_TTL = 30.0
_DEFAULT_MAX_RESTART_ATTEMPTS = 3
_DEFAULT_RESTART_COOLDOWN_MS = 5000
_DEFAULT_STOP_SETTLE = 2.0
_DEFAULT_START_SETTLE = 3.0

# Reliability coordinator
_DEFAULT_MONITORING_INTERVAL_MS = 15000
_DEFAULT_CRITICAL_ALERT_THRESHOLD = 3
_DEFAULT_RECOVERY_SETTLE = 2.0

# Lock
_DEFAULT_LOCK_NAME = "tmux-claude-live-daemon"
_DEFAULT_LOCK_TIMEOUT = 300.0

# Upstream / store
_DEFAULT_UPSTREAM_COMMAND = "ccusage"
_DEFAULT_STORE_PREFIX = "@ccusage_"


# =============================================================================
# SETTINGS CLASS
# =============================================================================


@dataclass
class DaemonSettings:
    """
    Runtime settings for the refresh daemon.

    Loaded from the environment at instantiation time. Components receive
    the values they need as constructor arguments; nothing below reads this
    object implicitly.
    """

    # -------------------------------------------------------------------------
    # Timeouts
    # -------------------------------------------------------------------------

    upstream_timeout: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_UPSTREAM_TIMEOUT", _DEFAULT_UPSTREAM_TIMEOUT, min_val=0.5
    ))
    """Bound on a single ccusage invocation."""

    store_timeout: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_STORE_TIMEOUT", _DEFAULT_STORE_TIMEOUT, min_val=0.1
    ))
    """Bound on a single tmux get/set/unset."""

    store_bulk_timeout: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_STORE_BULK_TIMEOUT", _DEFAULT_STORE_BULK_TIMEOUT, min_val=0.5
    ))
    """Bound on a chained bulk write."""

    # -------------------------------------------------------------------------
    # Refresh and cache
    # -------------------------------------------------------------------------

    refresh_interval_ms: Optional[int] = None
    """Explicit refresh interval. None means use the display config's update_interval."""

    cache_base_ttl_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CACHE_BASE_TTL_MS", _DEFAULT_CACHE_BASE_TTL_MS, min_val=1000
    ))
    cache_min_ttl_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CACHE_MIN_TTL_MS", _DEFAULT_CACHE_MIN_TTL_MS, min_val=100
    ))
    cache_max_ttl_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CACHE_MAX_TTL_MS", _DEFAULT_CACHE_MAX_TTL_MS, min_val=1000
    ))

    # -------------------------------------------------------------------------
    # Retry budgets
    # -------------------------------------------------------------------------

    config_attempts: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CONFIG_ATTEMPTS", _DEFAULT_CONFIG_ATTEMPTS, min_val=1
    ))
    config_backoff_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CONFIG_BACKOFF_MS", _DEFAULT_CONFIG_BACKOFF_MS, min_val=0
    ))
    upstream_attempts: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_UPSTREAM_ATTEMPTS", _DEFAULT_UPSTREAM_ATTEMPTS, min_val=1
    ))
    upstream_backoff_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_UPSTREAM_BACKOFF_MS", _DEFAULT_UPSTREAM_BACKOFF_MS, min_val=0
    ))
    store_attempts: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_STORE_ATTEMPTS", _DEFAULT_STORE_ATTEMPTS, min_val=1
    ))
    store_backoff_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_STORE_BACKOFF_MS", _DEFAULT_STORE_BACKOFF_MS, min_val=0
    ))

    # -------------------------------------------------------------------------
    # Freshness
    # -------------------------------------------------------------------------

    fresh_threshold: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_FRESH_THRESHOLD", _DEFAULT_FRESH_THRESHOLD, min_val=1.0
    ))
    stale_threshold: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_STALE_THRESHOLD", _DEFAULT_STALE_THRESHOLD, min_val=1.0
    ))
    auto_invalidate: bool = field(default_factory=lambda: get_env_bool(
        "CLAUDE_LIVE_AUTO_INVALIDATE", True
    ))
    warning_prefix: str = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_WARNING_PREFIX", _DEFAULT_WARNING_PREFIX
    ))

    # -------------------------------------------------------------------------
    # Watchdog
    # -------------------------------------------------------------------------

    pid_cache_ttl: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_PID_CACHE_TTL", _DEFAULT_PID_CACHE_TTL, min_val=0.0
    ))
    max_restart_attempts: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_MAX_RESTART_ATTEMPTS", _DEFAULT_MAX_RESTART_ATTEMPTS, min_val=1
    ))
    restart_cooldown_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_RESTART_COOLDOWN_MS", _DEFAULT_RESTART_COOLDOWN_MS, min_val=0
    ))
    stop_settle: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_STOP_SETTLE", _DEFAULT_STOP_SETTLE, min_val=0.0
    ))
    """Pause between stopping the old worker and removing its artifacts."""

    start_settle: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_START_SETTLE", _DEFAULT_START_SETTLE, min_val=0.0
    ))
    """Pause after spawning a worker before its health is re-checked."""

    # -------------------------------------------------------------------------
    # Reliability coordinator
    # -------------------------------------------------------------------------

    monitoring_interval_ms: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_MONITORING_INTERVAL_MS", _DEFAULT_MONITORING_INTERVAL_MS, min_val=1000
    ))
    critical_alert_threshold: int = field(default_factory=lambda: get_env_int(
        "CLAUDE_LIVE_CRITICAL_ALERT_THRESHOLD", _DEFAULT_CRITICAL_ALERT_THRESHOLD, min_val=1
    ))
    auto_recovery: bool = field(default_factory=lambda: get_env_bool(
        "CLAUDE_LIVE_AUTO_RECOVERY", True
    ))
    recovery_settle: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_RECOVERY_SETTLE", _DEFAULT_RECOVERY_SETTLE, min_val=0.0
    ))

    # -------------------------------------------------------------------------
    # Lock, paths, upstream
    # -------------------------------------------------------------------------

    lock_name: str = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_LOCK_NAME", _DEFAULT_LOCK_NAME
    ))
    lock_dir: Path = field(default_factory=lambda: Path(get_env_str(
        "CLAUDE_LIVE_LOCK_DIR", tempfile.gettempdir()
    )))
    lock_timeout: float = field(default_factory=lambda: get_env_float(
        "CLAUDE_LIVE_LOCK_TIMEOUT", _DEFAULT_LOCK_TIMEOUT, min_val=5.0
    ))
    """Age after which a lock that was never refreshed counts as abandoned."""

    state_dir: Path = field(default_factory=lambda: Path(get_env_str(
        "CLAUDE_LIVE_STATE_DIR", str(Path.home() / ".claude-live")
    )).expanduser())
    log_file: Optional[str] = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_LOG_FILE", ""
    ) or None)
    log_level: str = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_LOG_LEVEL", "INFO"
    ).upper())

    upstream_command: str = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_UPSTREAM_COMMAND", _DEFAULT_UPSTREAM_COMMAND
    ))
    store_prefix: str = field(default_factory=lambda: get_env_str(
        "CLAUDE_LIVE_STORE_PREFIX", _DEFAULT_STORE_PREFIX
    ))

    def __post_init__(self) -> None:
        """Validate relationships between fields."""
        if self.cache_min_ttl_ms > self.cache_max_ttl_ms:
            logger.warning(
                f"[Settings] cache_min_ttl_ms={self.cache_min_ttl_ms} exceeds "
                f"cache_max_ttl_ms={self.cache_max_ttl_ms}, using defaults"
            )
            self.cache_min_ttl_ms = _DEFAULT_CACHE_MIN_TTL_MS
            self.cache_max_ttl_ms = _DEFAULT_CACHE_MAX_TTL_MS

        if not self.cache_min_ttl_ms <= self.cache_base_ttl_ms <= self.cache_max_ttl_ms:
            clamped = min(max(self.cache_base_ttl_ms, self.cache_min_ttl_ms), self.cache_max_ttl_ms)
            logger.warning(
                f"[Settings] cache_base_ttl_ms={self.cache_base_ttl_ms} outside "
                f"[{self.cache_min_ttl_ms}, {self.cache_max_ttl_ms}], clamping to {clamped}"
            )
            self.cache_base_ttl_ms = clamped

        if self.fresh_threshold >= self.stale_threshold:
            logger.warning(
                f"[Settings] fresh_threshold={self.fresh_threshold} must be below "
                f"stale_threshold={self.stale_threshold}, using defaults"
            )
            self.fresh_threshold = _DEFAULT_FRESH_THRESHOLD
            self.stale_threshold = _DEFAULT_STALE_THRESHOLD

    @property
    def status_file(self) -> Path:
        return self.state_dir / "daemon-status.json"


# =============================================================================
# MODULE-LEVEL ACCESS
# =============================================================================

_settings_instance: Optional[DaemonSettings] = None


def get_settings() -> DaemonSettings:
    """
    Get the lazily created DaemonSettings used by the command-line entry point.

    Returns:
        DaemonSettings instance
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = DaemonSettings()
    return _settings_instance


def reset_settings() -> None:
    """Forget the cached settings so the next get_settings() re-reads the environment."""
    global _settings_instance
    _settings_instance = None
