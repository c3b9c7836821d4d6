"""Configuration for the refresh daemon."""

from claude_live.config.settings import DaemonSettings, get_settings, reset_settings

__all__ = ["DaemonSettings", "get_settings", "reset_settings"]
