"""Adapters for the external commands: ccusage and tmux."""

from claude_live.clients.command_runner import CommandResult, CommandRunner
from claude_live.clients.tmux_store import TmuxStore, sanitize_value
from claude_live.clients.usage_client import UsageBlock, UsageClient

__all__ = [
    "CommandResult",
    "CommandRunner",
    "TmuxStore",
    "UsageBlock",
    "UsageClient",
    "sanitize_value",
]
