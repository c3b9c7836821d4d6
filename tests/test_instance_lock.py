"""Tests for the single-instance file lock."""

import json
import os

import pytest

from claude_live.core.errors import LockHeldError
from claude_live.core.instance_lock import InstanceLock
from conftest import ManualClock

OTHER_PID = 999_999


def _write_foreign_lock(lock, timestamp, pid=OTHER_PID):
    lock.lock_dir.mkdir(parents=True, exist_ok=True)
    lock.lock_path.write_text(json.dumps({"owner_pid": pid, "timestamp": timestamp, "hostname": "elsewhere"}))


@pytest.mark.asyncio
async def test_acquire_and_release(tmp_path):
    lock = InstanceLock("test", tmp_path / "locks")

    assert await lock.acquire() is True
    assert lock.held
    info = await lock.read_info()
    assert info.owner_pid == os.getpid()
    assert lock.pid_path.read_text() == str(os.getpid())
    assert await lock.is_locked()

    assert await lock.release() is True
    assert not lock.lock_path.exists()
    assert not lock.pid_path.exists()


@pytest.mark.asyncio
async def test_live_foreign_lock_blocks(tmp_path):
    clock = ManualClock()
    lock = InstanceLock("test", tmp_path, clock=clock, is_alive=lambda pid: True)
    _write_foreign_lock(lock, clock.now)

    assert await lock.acquire() is False
    with pytest.raises(LockHeldError) as info:
        await lock.acquire_or_raise()
    assert info.value.owner_pid == OTHER_PID
    assert str(OTHER_PID) in str(info.value)


@pytest.mark.asyncio
async def test_dead_owner_is_reclaimed(tmp_path):
    clock = ManualClock()
    lock = InstanceLock("test", tmp_path, clock=clock, is_alive=lambda pid: False)
    _write_foreign_lock(lock, clock.now)

    assert await lock.acquire() is True
    assert (await lock.read_info()).owner_pid == os.getpid()


@pytest.mark.asyncio
async def test_expired_lock_is_reclaimed(tmp_path):
    clock = ManualClock()
    lock = InstanceLock("test", tmp_path, timeout=300, clock=clock, is_alive=lambda pid: True)
    _write_foreign_lock(lock, clock.now - 301)

    assert await lock.acquire() is True


@pytest.mark.asyncio
async def test_unreadable_lock_is_replaced(tmp_path):
    lock = InstanceLock("test", tmp_path)
    lock.lock_path.write_text("{not json")
    assert await lock.acquire() is True


@pytest.mark.asyncio
async def test_refresh_keeps_long_running_owner_valid(tmp_path):
    clock = ManualClock()
    lock = InstanceLock("test", tmp_path, timeout=300, clock=clock)
    await lock.acquire()

    clock.advance(250)
    await lock.refresh()
    clock.advance(250)

    info = await lock.read_info()
    assert lock.is_valid(info)


@pytest.mark.asyncio
async def test_release_leaves_foreign_lock(tmp_path):
    clock = ManualClock()
    lock = InstanceLock("test", tmp_path, clock=clock, is_alive=lambda pid: True)
    _write_foreign_lock(lock, clock.now)

    assert await lock.release() is False
    assert lock.lock_path.exists()


@pytest.mark.asyncio
async def test_context_manager(tmp_path):
    lock = InstanceLock("test", tmp_path)
    async with lock:
        assert lock.lock_path.exists()
    assert not lock.lock_path.exists()
