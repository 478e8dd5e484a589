import pytest

from wishquest import EngineApp, WishQuestConfig
from wishquest.app import resolve_timezone
from wishquest.config import StorageConfig


def test_from_env(monkeypatch):
    monkeypatch.setenv("WISHQUEST_STORAGE_BACKEND", "sqlalchemy")
    monkeypatch.setenv("WISHQUEST_SWEEP_BATCH_SIZE", "50")
    monkeypatch.setenv("WISHQUEST_QUOTA_TIMEZONE", "Europe/Moscow")
    monkeypatch.setenv("WISHQUEST_ECONOMY_OVERRIDES", '{"daily_gift_base_limit": 3}')
    monkeypatch.setenv("WISHQUEST_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("WISHQUEST_RNG_SEED", "42")
    monkeypatch.setenv("WISHQUEST_LOG_LEVEL", "debug")

    config = WishQuestConfig.from_env()
    assert config.storage.backend == "sqlalchemy"
    assert config.storage.resolve_dsn() == "sqlite+aiosqlite:///./wishquest.db"
    assert config.scheduler.batch_size == 50
    assert config.quota_timezone == "Europe/Moscow"
    assert config.economy_overrides == {"daily_gift_base_limit": 3}
    assert config.telegram.enabled
    assert config.rng_seed == 42
    assert config.log_level == "DEBUG"


def test_invalid_overrides(monkeypatch):
    monkeypatch.setenv("WISHQUEST_ECONOMY_OVERRIDES", "[1, 2]")
    with pytest.raises(ValueError):
        WishQuestConfig.from_env()
    monkeypatch.setenv("WISHQUEST_ECONOMY_OVERRIDES", "{broken")
    with pytest.raises(ValueError):
        WishQuestConfig.from_env()


@pytest.mark.asyncio()
async def test_memory_overrides_apply_immediately():
    app = EngineApp(WishQuestConfig(economy_overrides={"weekly_gift_base_limit": 30}))
    assert (await app.settings.current()).weekly_gift_base_limit == 30


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        EngineApp(WishQuestConfig(storage=StorageConfig(backend="redis")))


def test_snapshot_and_timezone(memory_app):
    snapshot = memory_app.snapshot()
    assert snapshot["storage"] == "memory"
    assert snapshot["ranks"][0] == "Private"
    assert set(snapshot["maintenance_intervals"]) == {
        "expire_quests",
        "expire_events",
        "reset_quotas",
        "recalculate_ranks",
        "retry_payouts",
        "process_schedules",
    }
    assert resolve_timezone("UTC").utcoffset(None).total_seconds() == 0
