"""Tests for environment-backed settings."""

from pathlib import Path

import pytest

from claude_live.config.settings import DaemonSettings, get_settings, reset_settings
from claude_live.utils.env_config import get_env_bool, get_env_float, get_env_int, get_env_str


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.mark.unit
def test_env_readers(monkeypatch):
    monkeypatch.setenv("CL_TEST_FLOAT", "2.5")
    monkeypatch.setenv("CL_TEST_INT", "7")
    monkeypatch.setenv("CL_TEST_BOOL", "off")
    monkeypatch.setenv("CL_TEST_STR", "  value  ")

    assert get_env_float("CL_TEST_FLOAT", 1.0) == 2.5
    assert get_env_int("CL_TEST_INT", 1) == 7
    assert get_env_bool("CL_TEST_BOOL", True) is False
    assert get_env_str("CL_TEST_STR", "x") == "value"
    assert get_env_str("CL_TEST_UNSET", "x") == "x"


@pytest.mark.unit
def test_env_readers_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("CL_TEST_FLOAT", "fast")
    monkeypatch.setenv("CL_TEST_INT", "3.5")
    monkeypatch.setenv("CL_TEST_BOOL", "maybe")

    assert get_env_float("CL_TEST_FLOAT", 1.0) == 1.0
    assert get_env_int("CL_TEST_INT", 1) == 1
    assert get_env_bool("CL_TEST_BOOL", True) is True
    assert get_env_int("CL_TEST_INT_RANGE", 5, min_val=1) == 5


@pytest.mark.unit
def test_env_readers_enforce_bounds(monkeypatch):
    monkeypatch.setenv("CL_TEST_INT", "0")
    monkeypatch.setenv("CL_TEST_FLOAT", "1000")
    assert get_env_int("CL_TEST_INT", 3, min_val=1) == 3
    assert get_env_float("CL_TEST_FLOAT", 2.0, max_val=10.0) == 2.0


@pytest.mark.unit
def test_defaults():
    settings = DaemonSettings()
    assert settings.upstream_timeout == 15.0
    assert settings.cache_base_ttl_ms == 30000
    assert (settings.upstream_attempts, settings.upstream_backoff_ms) == (2, 2000)
    assert settings.fresh_threshold == 30.0
    assert settings.stale_threshold == 300.0
    assert settings.store_prefix == "@ccusage_"
    assert settings.status_file == settings.state_dir / "daemon-status.json"


@pytest.mark.unit
def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CLAUDE_LIVE_UPSTREAM_TIMEOUT", "20")
    monkeypatch.setenv("CLAUDE_LIVE_AUTO_RECOVERY", "false")
    monkeypatch.setenv("CLAUDE_LIVE_STATE_DIR", str(tmp_path))
    monkeypatch.setenv("CLAUDE_LIVE_LOG_LEVEL", "debug")

    settings = get_settings()
    assert settings.upstream_timeout == 20.0
    assert settings.auto_recovery is False
    assert settings.state_dir == Path(tmp_path)
    assert settings.log_level == "DEBUG"
    assert get_settings() is settings


@pytest.mark.unit
def test_inconsistent_values_are_corrected(monkeypatch):
    monkeypatch.setenv("CLAUDE_LIVE_CACHE_MIN_TTL_MS", "50000")
    monkeypatch.setenv("CLAUDE_LIVE_CACHE_MAX_TTL_MS", "10000")
    monkeypatch.setenv("CLAUDE_LIVE_FRESH_THRESHOLD", "400")

    settings = DaemonSettings()
    assert settings.cache_min_ttl_ms == 5000
    assert settings.cache_max_ttl_ms == 120000
    assert settings.fresh_threshold == 30.0
    assert settings.stale_threshold == 300.0


@pytest.mark.unit
def test_base_ttl_is_clamped(monkeypatch):
    monkeypatch.setenv("CLAUDE_LIVE_CACHE_BASE_TTL_MS", "200000")
    assert DaemonSettings().cache_base_ttl_ms == 120000
