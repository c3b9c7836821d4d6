"""
Pytest configuration and shared fixtures for claude_live tests.

This file contains:
- In-memory fakes for the tmux store and the subprocess runner
- A manually advanced clock and a recording sleep
- Marker registration
"""

import json
from typing import Dict, List, Mapping, Optional, Sequence

import pytest

from claude_live.clients.command_runner import CommandResult
from claude_live.core.errors import StoreError


class FakeStore:
    """Dict-backed stand-in for TmuxStore that counts store calls."""

    def __init__(self, options: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(options or {})
        self.bulk_writes: List[Dict[str, str]] = []
        self.set_calls: List[tuple] = []
        self.fail_with: Optional[StoreError] = None
        self.fail_enumerate_with: Optional[Exception] = None

    async def get(self, key: str) -> Optional[str]:
        self._maybe_fail()
        value = self.values.get(key)
        return value or None

    async def set(self, key: str, value: object) -> None:
        self._maybe_fail()
        self.set_calls.append((key, str(value)))
        self.values[key] = str(value)

    async def unset(self, key: str) -> None:
        self._maybe_fail()
        self.values.pop(key, None)

    async def bulk_set(self, values: Mapping[str, object]) -> int:
        self._maybe_fail()
        written = {k: str(v) for k, v in values.items()}
        self.bulk_writes.append(written)
        self.values.update(written)
        return len(written)

    async def enumerate(self, prefix: str = "") -> Dict[str, str]:
        if self.fail_enumerate_with is not None:
            raise self.fail_enumerate_with
        self._maybe_fail()
        return {k: v for k, v in self.values.items() if k.startswith(prefix)}

    async def clear_all(self, keys: Optional[Sequence[str]] = None) -> int:
        targets = list(keys) if keys is not None else list(self.values)
        for key in targets:
            self.values.pop(key, None)
        return len(targets)

    @property
    def write_count(self) -> int:
        return len(self.bulk_writes)

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with


class FakeRunner:
    """Records argv lists and replays queued results or exceptions."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []
        self._queue: List[object] = []
        self.default = CommandResult(0, "", "")

    def queue(self, *outcomes: object) -> "FakeRunner":
        self._queue.extend(outcomes)
        return self

    async def run(self, argv, timeout=None, check=True):
        self.calls.append(list(argv))
        self.timeouts.append(timeout)
        outcome = self._queue.pop(0) if self._queue else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeProbe:
    def __init__(self, alive=()):
        self.alive = set(alive)
        self.probed: List[int] = []

    def is_alive(self, pid: int) -> bool:
        self.probed.append(pid)
        return pid in self.alive


class FakeController:
    """WorkerController that 'starts' a worker by publishing a live PID."""

    def __init__(self, store: FakeStore, probe: FakeProbe, new_pid: int = 4242, start_works: bool = True):
        self.store = store
        self.probe = probe
        self.new_pid = new_pid
        self.start_works = start_works
        self.stopped: List[int] = []
        self.cleanups = 0
        self.starts = 0

    async def stop(self, pid: int) -> None:
        self.stopped.append(pid)
        self.probe.alive.discard(pid)

    async def cleanup(self) -> None:
        self.cleanups += 1

    async def start(self) -> None:
        self.starts += 1
        if self.start_works:
            self.store.values["daemon_pid"] = str(self.new_pid)
            self.probe.alive.add(self.new_pid)


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    def __init__(self, clock: Optional[ManualClock] = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def usage_payload(total_tokens=130000, limit=None, blocks=True, **overrides) -> str:
    """ccusage `blocks --active --json` output with one active block."""
    block = {
        "id": "2025-01-01T10:00:00.000Z",
        "startTime": "2025-01-01T10:00:00.000Z",
        "endTime": "2025-01-01T15:00:00.000Z",
        "isActive": True,
        "totalTokens": total_tokens,
        "costUSD": 4.56,
        "tokenCounts": {
            "inputTokens": 1000,
            "outputTokens": 2000,
            "cacheCreationInputTokens": 0,
            "cacheReadInputTokens": 0,
        },
        "models": ["claude-sonnet-4"],
        "entries": 12,
        "burnRate": {"tokensPerMinute": 250.0, "costPerHour": 0.2},
        "projection": {"totalTokens": 200000, "totalCost": 7.0, "remainingMinutes": 125},
    }
    if limit is not None:
        block["tokenLimitStatus"] = {"limit": limit, "projectedUsage": 150000, "percentUsed": 92.0, "status": "warning"}
    block.update(overrides)
    return json.dumps({"blocks": [block] if blocks else []})


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as an end-to-end test"
    )
