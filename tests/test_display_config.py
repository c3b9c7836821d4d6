"""Tests for reading the display configuration from tmux options."""

import pytest

from claude_live.core.display_config import DisplayConfig, DisplayConfigLoader
from claude_live.core.errors import ConfigInvalidError
from conftest import FakeStore


@pytest.mark.unit
def test_defaults_are_valid():
    config = DisplayConfig()
    assert config.validate() == []
    assert config.update_interval == 10
    assert config.token_limit == 140000
    assert config.usage_warning_thresholds == (70, 90)


@pytest.mark.unit
def test_valid_options_override_defaults():
    config = DisplayConfigLoader.from_options({
        "update_interval": "5",
        "token_limit": "200000",
        "warning_threshold_1": "60",
        "warning_threshold_2": "85",
        "time_warning_1": "90",
        "time_warning_2": "20",
        "time_format": "verbose",
        "cost_format": "compact",
        "token_format": "full",
    })
    assert config.update_interval == 5
    assert config.token_limit == 200000
    assert config.usage_warning_thresholds == (60, 85)
    assert config.time_warning_thresholds == (90, 20)
    assert (config.time_format, config.cost_format, config.token_format) == ("verbose", "compact", "full")


@pytest.mark.unit
@pytest.mark.parametrize(
    "options",
    [
        {"update_interval": "0"},
        {"update_interval": "abc"},
        {"token_limit": "500"},
        {"warning_threshold_1": "95"},
        {"warning_threshold_2": "150"},
        {"time_warning_1": "10", "time_warning_2": "20"},
        {"time_format": "fancy"},
    ],
)
def test_invalid_options_keep_defaults(options):
    assert DisplayConfigLoader.from_options(options) == DisplayConfig()


@pytest.mark.unit
def test_validate_reports_problems():
    config = DisplayConfig(update_interval=0, token_limit=10, usage_warning_thresholds=(90, 70))
    problems = config.validate()
    assert len(problems) == 3


@pytest.mark.asyncio
async def test_loader_reads_store():
    store = FakeStore({"token_limit": "100000", "unrelated": "x"})
    config = await DisplayConfigLoader(store).load()
    assert config.token_limit == 100000


@pytest.mark.asyncio
async def test_loader_rejects_inconsistent_defaults():
    loader = DisplayConfigLoader(FakeStore(), defaults=DisplayConfig(token_limit=10))
    with pytest.raises(ConfigInvalidError) as info:
        await loader.load()
    assert info.value.problems == ["token_limit must be at least 1000"]
