import pytest

from wishquest import EngineApp, WishQuestConfig
from wishquest.config import SchedulerConfig, TelegramConfig
from wishquest.domain.exceptions import ValidationError
from wishquest.domain.ranks import Rank
from wishquest.domain.settings import EconomySettings
from wishquest.validators import validate_app, validate_rank_table, validate_settings


def test_default_settings_are_valid():
    assert validate_settings(EconomySettings()) == []


def test_settings_problems_are_reported():
    settings = EconomySettings(daily_gift_base_limit=30, event_reward_variance=(1.2, 0.8))
    settings.priority_cost_multiplier = {1: 2, 2: 1}
    del settings.enchantment_costs["aura"]
    errors = validate_settings(settings)
    assert "Daily gift limit cannot exceed the weekly limit." in errors
    assert "Enchantment cost for 'aura' is not configured." in errors
    assert "Priority multipliers must not decrease with level." in errors
    assert any("event_reward_variance" in error for error in errors)


@pytest.mark.asyncio()
async def test_update_is_live_and_validated(memory_app):
    updated = await memory_app.settings.update("daily_gift_base_limit", 7, "holiday season")
    assert updated.daily_gift_base_limit == 7
    assert (await memory_app.settings.current()).daily_gift_base_limit == 7

    with pytest.raises(ValidationError):
        await memory_app.settings.update("daily_gift_base_limit", 500)
    with pytest.raises(ValidationError):
        await memory_app.settings.update("free_mana", 1)
    assert (await memory_app.settings.current()).daily_gift_base_limit == 7


@pytest.mark.asyncio()
async def test_nested_settings_round_trip(memory_app):
    await memory_app.settings.update("priority_cost_multiplier", {"1": 0, "2": 3, "3": 6})
    current = await memory_app.settings.current()
    assert current.priority_cost_multiplier == {1: 0, 2: 3, 3: 6}


def test_rank_table_checks():
    errors = validate_rank_table([Rank("Recruit", 10), Rank("Recruit", 20, daily_quota_bonus=-1)])
    assert "Rank 'Recruit' is defined more than once." in errors
    assert "The lowest rank must start at 0 experience." in errors
    assert any("negative daily_quota_bonus" in error for error in errors)


@pytest.mark.asyncio()
async def test_validate_app_success(memory_app):
    assert await validate_app(memory_app) == []


@pytest.mark.asyncio()
async def test_validate_app_reports_configuration_problems():
    config = WishQuestConfig(
        scheduler=SchedulerConfig(batch_size=0),
        telegram=TelegramConfig(enabled=True),
    )
    recruit = Rank("Recruit", 0, special_privileges={"can_create_easy_quests": True})
    app = EngineApp(config, ranks=[recruit])
    issues = await validate_app(app)
    assert "Scheduler 'batch_size' must be positive." in issues
    assert "Telegram delivery is enabled but no bot token is configured." in issues
    assert any("can_create_epic_quests" in issue for issue in issues)
