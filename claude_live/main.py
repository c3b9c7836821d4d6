"""
claude-live command line.

    claude-live once              run a single refresh cycle and exit
    claude-live start [ms]        run the refresh daemon in the foreground
    claude-live stop              terminate the running daemon
    claude-live status            print reliability report and daemon status
    claude-live recover           force a recovery pass
    claude-live clear             unset every published tmux option
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from claude_live import __version__
from claude_live.config.settings import DaemonSettings, get_settings
from claude_live.core.errors import LockHeldError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

COMMAND_ALIASES = {
    "update": "once",
    "daemon": "start",
}


def setup_logging(settings: DaemonSettings, verbose: bool = False, quiet: bool = False) -> None:
    level_name = "DEBUG" if verbose else "WARNING" if quiet else settings.log_level
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if settings.log_file:
        handler = logging.FileHandler(settings.log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    # asyncio logs every cancelled subprocess at debug level
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claude-live",
        description="Live Claude Code usage in the tmux status line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh the status line once (e.g. from a tmux status-interval hook)
  claude-live once

  # Run the daemon, refreshing every 5 seconds
  claude-live start 5000
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("once", aliases=["update"], help="Run a single refresh cycle")
    start = sub.add_parser("start", aliases=["daemon"], help="Run the refresh daemon")
    start.add_argument(
        "interval_ms",
        nargs="?",
        type=int,
        default=None,
        help="Refresh interval in milliseconds (default: @ccusage_update_interval)",
    )
    sub.add_parser("stop", help="Stop the running daemon")
    sub.add_parser("status", help="Show daemon and reliability status")
    sub.add_parser("recover", help="Force a recovery pass")
    sub.add_parser("clear", help="Unset every published tmux option")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    args = build_parser().parse_args(argv)
    args.command = COMMAND_ALIASES.get(args.command, args.command)
    return args


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


# =============================================================================
# Commands
# =============================================================================


async def run_command(args: argparse.Namespace, settings: DaemonSettings) -> int:
    from claude_live.core.daemon import UsageDaemon, build_runtime, read_status_file, stop_daemon

    runtime = build_runtime(settings)

    if args.command == "once":
        ok = await runtime.cycle.run_once()
        return 0 if ok else 1

    if args.command == "start":
        daemon = UsageDaemon(runtime)
        try:
            await daemon.start(args.interval_ms)
        except LockHeldError as e:
            print(f"❌ {e}", file=sys.stderr)
            return 1
        await daemon.wait_closed()
        return 0

    if args.command == "stop":
        pid = await stop_daemon(runtime)
        print(f"Stopped daemon (PID {pid})" if pid else "No running daemon found")
        return 0

    if args.command == "status":
        report = await runtime.coordinator.generate_report()
        _print_json({
            "reliability": report.to_dict(),
            "daemon": await read_status_file(settings.status_file),
        })
        return 0

    if args.command == "recover":
        report = await runtime.coordinator.force_system_recovery()
        _print_json(report.to_dict())
        return 0

    if args.command == "clear":
        cleared = await runtime.cycle.clear()
        print(f"Cleared {cleared} options")
        return 0

    logger.error(f"[CLI] Unknown command: {args.command}")
    return 2


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(settings, verbose=args.verbose, quiet=args.quiet)
    try:
        code = asyncio.run(run_command(args, settings))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
