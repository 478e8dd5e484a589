"""Top level application object wiring the wishquest engines together."""

from __future__ import annotations

import logging
from datetime import timezone, tzinfo
from random import Random
from typing import Any, Sequence
from zoneinfo import ZoneInfo

from aiogram import Bot

from .config import WishQuestConfig
from .domain.clock import Clock, utcnow
from .domain.economy import EconomyEngine
from .domain.ledger import Ledger
from .domain.maintenance import MaintenanceService
from .domain.notifications import NotificationBus
from .domain.quests import QuestEngine
from .domain.quotas import QuotaTracker
from .domain.random_events import DEFAULT_EVENT_POOL, EventGenerator, EventTemplate
from .domain.ranks import DEFAULT_RANKS, Rank, RankCalculator
from .domain.settings import SettingsService
from .domain.users import UserService
from .domain.wishes import WishService
from .storage.base import Storage
from .storage.memory import InMemoryStorage
from .storage.sqlalchemy import AsyncSQLAlchemyStorage
from .telegram.notifier import TelegramNotifier

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class EngineApp:
    """Central dependency container used by transports, jobs and tests."""

    def __init__(
        self,
        config: WishQuestConfig,
        *,
        storage: Storage | None = None,
        notifications: NotificationBus | None = None,
        ranks: Sequence[Rank] | None = None,
        event_pool: Sequence[EventTemplate] | None = None,
        rng: Random | None = None,
        clock: Clock = utcnow,
        bot: Bot | None = None,
    ) -> None:
        self.config = config
        self.clock = clock
        self.notifications = notifications or NotificationBus()
        self._rng = rng or (Random(config.rng_seed) if config.rng_seed is not None else Random())

        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        self.storage = self._wire_storage(storage)
        self.settings = SettingsService(self.storage.settings)

        self.ranks = RankCalculator(ranks or DEFAULT_RANKS)
        self.quotas = QuotaTracker(
            self.ranks, tz=resolve_timezone(config.quota_timezone), clock=clock
        )
        self.ledger = Ledger(clock=clock)
        self.economy = EconomyEngine(
            self.storage,
            self.settings,
            ranks=self.ranks,
            quotas=self.quotas,
            ledger=self.ledger,
            notifications=self.notifications,
            clock=clock,
            metrics_window=config.metrics_window,
        )
        self.users = UserService(self.storage, ranks=self.ranks, clock=clock)
        self.wishes = WishService(self.storage, self.economy, clock=clock)
        self.quests = QuestEngine(self.storage, self.economy, clock=clock)
        self.events = EventGenerator(
            self.storage,
            self.economy,
            pool=event_pool or DEFAULT_EVENT_POOL,
            rng=self._rng,
            clock=clock,
        )
        self.maintenance = MaintenanceService(
            self.storage,
            self.economy,
            self.quests,
            self.events,
            batch_size=config.scheduler.batch_size,
            clock=clock,
        )

        self._owns_bot = False
        self.bot = self._wire_telegram(bot)

    def _wire_storage(self, storage: Storage | None) -> Storage:
        if storage is not None:
            return storage

        backend = self.config.storage.backend
        if backend == "memory":
            return InMemoryStorage(settings=self.config.economy_overrides)
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            sql_storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = sql_storage
            return sql_storage
        raise ValueError(f"Unsupported storage backend {backend}")

    def _wire_telegram(self, bot: Bot | None) -> Bot | None:
        if bot is None:
            telegram = self.config.telegram
            if not telegram.enabled:
                return None
            if not telegram.bot_token:
                logger.warning("Telegram delivery is enabled without a bot token; skipping")
                return None
            bot = Bot(telegram.bot_token)
            self._owns_bot = True
        TelegramNotifier(bot, self.storage).attach(self.notifications)
        return bot

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "telegram": self.bot is not None,
            "quota_timezone": self.config.quota_timezone,
            "ranks": [rank.name for rank in self.ranks.all()],
            "event_templates": [template.title for template in self.events.pool],
            "maintenance_intervals": self.config.scheduler.intervals(),
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources and seed setting overrides."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()
            stored = await self._sqlalchemy_storage.settings.load()
            for key, value in self.config.economy_overrides.items():
                if key not in stored:
                    await self.settings.update(key, value, "seeded from configuration")

    async def shutdown(self) -> None:
        if self.bot is not None and self._owns_bot:
            await self.bot.session.close()
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
