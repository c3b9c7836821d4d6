"""Tests for the tmux option store adapter."""

import pytest

from claude_live.clients.command_runner import CommandResult
from claude_live.clients.tmux_store import TmuxStore, sanitize_value
from claude_live.core.errors import (
    CommandFailedError,
    CommandNotFoundError,
    CommandTimeoutError,
    StoreNoSessionError,
    StorePermissionError,
    StoreUnavailableError,
)
from conftest import FakeRunner


def _failed(stderr):
    return CommandFailedError("tmux exited with status 1", ["tmux"], returncode=1, stderr=stderr)


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("plain", "plain"),
        ("two\nlines", "two lines"),
        ("cr\r\nlf", "cr  lf"),
        ("nul\x00byte", "nulbyte"),
        ("ends;", "ends\\;"),
        (None, ""),
        (42, "42"),
    ],
)
def test_sanitize_value(raw, expected):
    assert sanitize_value(raw) == expected


@pytest.mark.asyncio
async def test_get_reads_prefixed_option():
    runner = FakeRunner().queue(CommandResult(0, "42\n", ""))
    store = TmuxStore(runner)

    assert await store.get("total_tokens") == "42"
    assert runner.calls == [["tmux", "show-option", "-gqv", "@ccusage_total_tokens"]]


@pytest.mark.asyncio
async def test_get_empty_is_none():
    store = TmuxStore(FakeRunner().queue(CommandResult(0, "\n", "")))
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_set_and_unset_argv():
    runner = FakeRunner()
    store = TmuxStore(runner, prefix="@test_")
    await store.set("status", "a;")
    await store.unset("status")
    assert runner.calls == [
        ["tmux", "set-option", "-g", "@test_status", "a\\;"],
        ["tmux", "set-option", "-gu", "@test_status"],
    ]


@pytest.mark.asyncio
async def test_bulk_set_is_one_chained_call():
    runner = FakeRunner()
    store = TmuxStore(runner, bulk_timeout=12.0)

    assert await store.bulk_set({"a": "1", "b": 2}) == 2
    assert runner.calls == [[
        "tmux", "set-option", "-g", "@ccusage_a", "1",
        ";", "set-option", "-g", "@ccusage_b", "2",
    ]]
    assert runner.timeouts == [12.0]


@pytest.mark.asyncio
async def test_bulk_set_empty_is_noop():
    runner = FakeRunner()
    assert await TmuxStore(runner).bulk_set({}) == 0
    assert runner.calls == []


@pytest.mark.asyncio
async def test_bulk_set_falls_back_per_key():
    runner = FakeRunner().queue(_failed("command too long"), CommandResult(0, "", ""), _failed("bad value"))
    store = TmuxStore(runner)

    assert await store.bulk_set({"a": "1", "b": "2"}) == 1
    assert len(runner.calls) == 3


@pytest.mark.asyncio
async def test_bulk_set_raises_when_nothing_written():
    runner = FakeRunner().queue(_failed("oops"), _failed("oops"), _failed("oops"))
    with pytest.raises(StoreUnavailableError):
        await TmuxStore(runner).bulk_set({"a": "1", "b": "2"})


@pytest.mark.asyncio
async def test_no_session_is_not_retried_per_key():
    runner = FakeRunner().queue(_failed("no server running on /tmp/tmux-1000/default"))
    with pytest.raises(StoreNoSessionError):
        await TmuxStore(runner).bulk_set({"a": "1", "b": "2"})
    assert len(runner.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (CommandNotFoundError("tmux: command not found", ["tmux"]), StoreUnavailableError),
        (CommandTimeoutError("tmux timed out", ["tmux"], 5.0), StoreUnavailableError),
        (_failed("error connecting to /tmp/tmux-1000/default"), StoreNoSessionError),
        (_failed("Permission denied"), StorePermissionError),
        (_failed("unknown option"), StoreUnavailableError),
    ],
)
async def test_error_mapping(error, expected):
    store = TmuxStore(FakeRunner().queue(error))
    with pytest.raises(expected) as info:
        await store.get("total_tokens")
    assert info.value.key == "total_tokens"


@pytest.mark.asyncio
async def test_enumerate_strips_prefix_and_quotes():
    output = (
        "@ccusage_token_limit 200000\n"
        '@ccusage_time_format "verbose"\n'
        '@ccusage_error_message "say \\"hi\\""\n'
        'status-left "[#S] "\n'
        "@other_option 1\n"
    )
    store = TmuxStore(FakeRunner().queue(CommandResult(0, output, "")))

    assert await store.enumerate() == {
        "token_limit": "200000",
        "time_format": "verbose",
        "error_message": 'say "hi"',
    }


@pytest.mark.asyncio
async def test_enumerate_filters_by_short_prefix():
    output = "@ccusage_time_format compact\n@ccusage_token_limit 1000\n"
    store = TmuxStore(FakeRunner().queue(CommandResult(0, output, "")))
    assert await store.enumerate("time") == {"time_format": "compact"}


@pytest.mark.asyncio
async def test_clear_all_unsets_enumerated_keys():
    runner = FakeRunner().queue(CommandResult(0, "@ccusage_a 1\n@ccusage_b 2\n", ""))
    store = TmuxStore(runner)

    assert await store.clear_all() == 2
    assert runner.calls[1:] == [
        ["tmux", "set-option", "-gu", "@ccusage_a"],
        ["tmux", "set-option", "-gu", "@ccusage_b"],
    ]
