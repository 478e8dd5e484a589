"""Configuration models for wishquest."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping


StorageBackend = Literal["memory", "sqlalchemy"]

_TRUTHY = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Configure where users, quests, events and the ledger are persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./wishquest.db"
        return None


@dataclass(slots=True)
class SchedulerConfig:
    """Intervals, in seconds, at which an external scheduler runs each hook."""

    quest_expiration_interval: int = 3600
    event_expiration_interval: int = 1800
    quota_reset_interval: int = 3600
    rank_recalculation_interval: int = 21600
    payout_retry_interval: int = 900
    schedule_processing_interval: int = 600
    batch_size: int = 500

    def intervals(self) -> dict[str, int]:
        return {
            "expire_quests": self.quest_expiration_interval,
            "expire_events": self.event_expiration_interval,
            "reset_quotas": self.quota_reset_interval,
            "recalculate_ranks": self.rank_recalculation_interval,
            "retry_payouts": self.payout_retry_interval,
            "process_schedules": self.schedule_processing_interval,
        }


@dataclass(slots=True)
class TelegramConfig:
    bot_token: str = ""
    enabled: bool = False


@dataclass(slots=True)
class WishQuestConfig:
    """Top-level configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    quota_timezone: str = "UTC"
    metrics_window: int = 200
    economy_overrides: Mapping[str, Any] = field(default_factory=dict)
    rng_seed: int | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "WishQuestConfig":
        """Create config from environment variables prefixed with WISHQUEST_."""
        prefix = "WISHQUEST_"
        defaults = SchedulerConfig()

        def _int(name: str, default: int) -> int:
            raw = os.getenv(f"{prefix}{name}")
            return int(raw) if raw else default

        storage = StorageConfig(
            backend=os.getenv(f"{prefix}STORAGE_BACKEND", "memory"),  # type: ignore[arg-type]
            dsn=os.getenv(f"{prefix}STORAGE_DSN"),
            echo_sql=os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false").lower() in _TRUTHY,
        )
        scheduler = SchedulerConfig(
            quest_expiration_interval=_int(
                "QUEST_EXPIRATION_INTERVAL", defaults.quest_expiration_interval
            ),
            event_expiration_interval=_int(
                "EVENT_EXPIRATION_INTERVAL", defaults.event_expiration_interval
            ),
            quota_reset_interval=_int("QUOTA_RESET_INTERVAL", defaults.quota_reset_interval),
            rank_recalculation_interval=_int(
                "RANK_RECALCULATION_INTERVAL", defaults.rank_recalculation_interval
            ),
            payout_retry_interval=_int("PAYOUT_RETRY_INTERVAL", defaults.payout_retry_interval),
            schedule_processing_interval=_int(
                "SCHEDULE_PROCESSING_INTERVAL", defaults.schedule_processing_interval
            ),
            batch_size=_int("SWEEP_BATCH_SIZE", defaults.batch_size),
        )
        bot_token = os.getenv(f"{prefix}BOT_TOKEN", "")
        telegram = TelegramConfig(
            bot_token=bot_token,
            enabled=os.getenv(
                f"{prefix}TELEGRAM_ENABLED", "true" if bot_token else "false"
            ).lower()
            in _TRUTHY,
        )

        return cls(
            storage=storage,
            scheduler=scheduler,
            telegram=telegram,
            quota_timezone=os.getenv(f"{prefix}QUOTA_TIMEZONE", "UTC") or "UTC",
            metrics_window=_int("METRICS_WINDOW", 200),
            economy_overrides=_parse_overrides(os.getenv(f"{prefix}ECONOMY_OVERRIDES")),
            rng_seed=(
                int(os.getenv(f"{prefix}RNG_SEED")) if os.getenv(f"{prefix}RNG_SEED") else None
            ),
            log_level=os.getenv(f"{prefix}LOG_LEVEL", "INFO").upper(),
        )


def _parse_overrides(raw: str | None) -> Mapping[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON for WISHQUEST_ECONOMY_OVERRIDES") from exc
    if not isinstance(data, dict):
        raise ValueError("WISHQUEST_ECONOMY_OVERRIDES must be a JSON object")
    return data
