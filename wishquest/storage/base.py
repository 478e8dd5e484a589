"""Storage abstractions used by the wishquest services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Mapping, Protocol, Sequence


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class UserRecord:
    user_id: str
    name: str = ""
    telegram_id: int | None = None
    partner_id: str | None = None
    mana: int = 0
    mana_spent: int = 0
    rank: str = "Private"
    experience_points: int = 0
    daily_quota_used: int = 0
    weekly_quota_used: int = 0
    monthly_quota_used: int = 0
    last_quota_reset: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class WishRecord:
    wish_id: str
    description: str
    author_id: str
    assignee_id: str | None = None
    status: str = "active"
    category: str = "general"
    is_shared: bool = False
    is_gift: bool = False
    is_historical: bool = False
    enchantments: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None


@dataclass(slots=True)
class QuestRecord:
    quest_id: str
    title: str
    description: str
    author_id: str
    assignee_id: str
    category: str = "general"
    difficulty: str = "easy"
    mana_reward: int = 0
    experience_reward: int = 0
    status: str = "active"
    due_date: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    payout_status: str = "none"


@dataclass(slots=True)
class RandomEventRecord:
    event_id: str
    user_id: str
    title: str
    description: str
    category: str = "general"
    mana_reward: int = 0
    experience_reward: int = 0
    status: str = "active"
    expires_at: datetime = field(default_factory=_utcnow)
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    completed_by: str | None = None
    payout_status: str = "none"


@dataclass(slots=True)
class TransactionRecord:
    transaction_id: str
    user_id: str
    type: str
    mana_amount: int
    description: str
    transaction_category: str
    related_entity_id: str | None = None
    related_entity_type: str | None = None
    experience_gained: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def signed_amount(self) -> int:
        return self.mana_amount if self.type == "credit" else -self.mana_amount


@dataclass(slots=True)
class ScheduleRecord:
    schedule_id: str
    owner_id: str
    kind: str
    due_at: datetime
    created_at: datetime = field(default_factory=_utcnow)
    processed_at: datetime | None = None


class UserRepository(Protocol):
    async def get(self, user_id: str) -> UserRecord | None:
        ...

    async def add(self, record: UserRecord) -> None:
        ...

    async def save(self, record: UserRecord) -> None:
        ...

    async def list_ids(self) -> Sequence[str]:
        ...


class WishRepository(Protocol):
    async def get(self, wish_id: str) -> WishRecord | None:
        ...

    async def add(self, record: WishRecord) -> None:
        ...

    async def save(self, record: WishRecord) -> None:
        ...


class QuestRepository(Protocol):
    async def get(self, quest_id: str) -> QuestRecord | None:
        ...

    async def add(self, record: QuestRecord) -> None:
        ...

    async def save(self, record: QuestRecord) -> None:
        ...

    async def count_active_by_author(self, author_id: str) -> int:
        ...

    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> Sequence[QuestRecord]:
        ...

    async def find_expired(self, now: datetime, limit: int = 500) -> Sequence[QuestRecord]:
        ...

    async def pending_payouts(self, limit: int = 500) -> Sequence[QuestRecord]:
        ...


class RandomEventRepository(Protocol):
    async def get(self, event_id: str) -> RandomEventRecord | None:
        ...

    async def add(self, record: RandomEventRecord) -> None:
        ...

    async def save(self, record: RandomEventRecord) -> None:
        ...

    async def active_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        ...

    async def list_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        ...

    async def find_expired(
        self, now: datetime, limit: int = 500
    ) -> Sequence[RandomEventRecord]:
        ...

    async def pending_payouts(self, limit: int = 500) -> Sequence[RandomEventRecord]:
        ...


class TransactionRepository(Protocol):
    async def add(self, record: TransactionRecord) -> None:
        ...

    async def recent_for_user(
        self, user_id: str, limit: int = 200
    ) -> Sequence[TransactionRecord]:
        ...

    async def balance_for_user(self, user_id: str) -> int:
        ...


class ScheduleRepository(Protocol):
    async def get(self, schedule_id: str) -> ScheduleRecord | None:
        ...

    async def add(self, record: ScheduleRecord) -> None:
        ...

    async def save(self, record: ScheduleRecord) -> None:
        ...

    async def due(self, now: datetime, limit: int = 500) -> Sequence[ScheduleRecord]:
        ...


class UnitOfWork(Protocol):
    """Repositories sharing one atomic transaction."""

    users: UserRepository
    wishes: WishRepository
    quests: QuestRepository
    events: RandomEventRepository
    transactions: TransactionRepository
    schedules: ScheduleRepository


class SettingsStore(Protocol):
    async def load(self) -> Mapping[str, Any]:
        ...

    async def save(self, key: str, value: Any, description: str | None = None) -> None:
        ...


class Storage(Protocol):
    settings: SettingsStore

    def unit_of_work(self) -> AsyncContextManager[UnitOfWork]:
        """Open an atomic unit; commit on exit, roll back on exception."""
        ...
