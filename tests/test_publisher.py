"""Tests for the differential variable publisher."""

import pytest

from claude_live.core.publisher import VariablePublisher
from conftest import FakeStore


@pytest.mark.asyncio
async def test_first_publish_writes_everything():
    store = FakeStore()
    publisher = VariablePublisher(store)
    assert await publisher.publish({"a": "1", "b": "2"}) == 2
    assert store.bulk_writes == [{"a": "1", "b": "2"}]


@pytest.mark.asyncio
async def test_unchanged_values_cost_nothing():
    store = FakeStore()
    publisher = VariablePublisher(store)
    await publisher.publish({"a": "1", "b": "2"})

    assert await publisher.publish({"a": "1", "b": "2"}) == 0
    assert store.write_count == 1
    assert publisher.writes == 1


@pytest.mark.asyncio
async def test_only_drifted_keys_are_written():
    store = FakeStore()
    publisher = VariablePublisher(store)
    await publisher.publish({"a": "1", "b": "2"})
    await publisher.publish({"a": "1", "b": "3"})
    assert store.bulk_writes[-1] == {"b": "3"}


@pytest.mark.asyncio
async def test_full_publish_and_forget():
    store = FakeStore()
    publisher = VariablePublisher(store)
    publisher.remember({"a": "1"})
    assert await publisher.publish({"a": "1"}) == 0
    assert await publisher.publish({"a": "1"}, full=True) == 1

    publisher.forget()
    assert publisher.published == {}
    assert await publisher.publish({"a": "1"}) == 1
