"""Live Claude Code usage in the tmux status line."""

__version__ = "1.0.0"
