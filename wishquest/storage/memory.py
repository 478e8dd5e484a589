"""In-memory storage backend for wishquest."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import datetime
from typing import Any, AsyncIterator, Generic, Mapping, Sequence, TypeVar

from ..domain.clock import as_utc
from ..domain.exceptions import StorageError
from .base import (
    QuestRecord,
    RandomEventRecord,
    ScheduleRecord,
    SettingsStore,
    Storage,
    TransactionRecord,
    UnitOfWork,
    UserRecord,
    WishRecord,
)

R = TypeVar("R")


class _StagedTable(Generic[R]):
    """Copy-on-write view over a committed table."""

    def __init__(self, committed: dict[str, R]) -> None:
        self._committed = committed
        self._staged: dict[str, R] = {}

    def get(self, key: str) -> R | None:
        if key in self._staged:
            return deepcopy(self._staged[key])
        record = self._committed.get(key)
        return deepcopy(record) if record is not None else None

    def contains(self, key: str) -> bool:
        return key in self._staged or key in self._committed

    def put(self, key: str, record: R) -> None:
        self._staged[key] = deepcopy(record)

    def rows(self) -> list[R]:
        merged = {**self._committed, **self._staged}
        return [deepcopy(record) for record in merged.values()]

    def commit(self) -> None:
        self._committed.update(self._staged)
        self._staged.clear()


class InMemoryUserRepository:
    def __init__(self, table: _StagedTable[UserRecord]) -> None:
        self._table = table

    async def get(self, user_id: str) -> UserRecord | None:
        return self._table.get(user_id)

    async def add(self, record: UserRecord) -> None:
        if self._table.contains(record.user_id):
            raise StorageError(f"User {record.user_id} already exists")
        self._table.put(record.user_id, record)

    async def save(self, record: UserRecord) -> None:
        self._table.put(record.user_id, record)

    async def list_ids(self) -> Sequence[str]:
        return sorted(record.user_id for record in self._table.rows())


class InMemoryWishRepository:
    def __init__(self, table: _StagedTable[WishRecord]) -> None:
        self._table = table

    async def get(self, wish_id: str) -> WishRecord | None:
        return self._table.get(wish_id)

    async def add(self, record: WishRecord) -> None:
        if self._table.contains(record.wish_id):
            raise StorageError(f"Wish {record.wish_id} already exists")
        self._table.put(record.wish_id, record)

    async def save(self, record: WishRecord) -> None:
        self._table.put(record.wish_id, record)


class InMemoryQuestRepository:
    def __init__(self, table: _StagedTable[QuestRecord]) -> None:
        self._table = table

    async def get(self, quest_id: str) -> QuestRecord | None:
        return self._table.get(quest_id)

    async def add(self, record: QuestRecord) -> None:
        if self._table.contains(record.quest_id):
            raise StorageError(f"Quest {record.quest_id} already exists")
        self._table.put(record.quest_id, record)

    async def save(self, record: QuestRecord) -> None:
        self._table.put(record.quest_id, record)

    async def count_active_by_author(self, author_id: str) -> int:
        return sum(
            1
            for quest in self._table.rows()
            if quest.author_id == author_id and quest.status == "active"
        )

    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> Sequence[QuestRecord]:
        quests = [
            quest
            for quest in self._table.rows()
            if user_id in (quest.author_id, quest.assignee_id)
            and (status is None or quest.status == status)
        ]
        return sorted(quests, key=lambda quest: quest.created_at, reverse=True)

    async def find_expired(self, now: datetime, limit: int = 500) -> Sequence[QuestRecord]:
        expired = [
            quest
            for quest in self._table.rows()
            if quest.status == "active"
            and quest.due_date is not None
            and as_utc(quest.due_date) < now
        ]
        expired.sort(key=lambda quest: as_utc(quest.due_date))
        return expired[:limit]

    async def pending_payouts(self, limit: int = 500) -> Sequence[QuestRecord]:
        pending = [quest for quest in self._table.rows() if quest.payout_status == "pending"]
        return pending[:limit]


class InMemoryRandomEventRepository:
    def __init__(self, table: _StagedTable[RandomEventRecord]) -> None:
        self._table = table

    async def get(self, event_id: str) -> RandomEventRecord | None:
        return self._table.get(event_id)

    async def add(self, record: RandomEventRecord) -> None:
        if self._table.contains(record.event_id):
            raise StorageError(f"Event {record.event_id} already exists")
        self._table.put(record.event_id, record)

    async def save(self, record: RandomEventRecord) -> None:
        self._table.put(record.event_id, record)

    async def active_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        return [
            event
            for event in self._table.rows()
            if event.user_id == user_id and event.status == "active"
        ]

    async def list_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        events = [event for event in self._table.rows() if event.user_id == user_id]
        return sorted(events, key=lambda event: event.created_at, reverse=True)

    async def find_expired(
        self, now: datetime, limit: int = 500
    ) -> Sequence[RandomEventRecord]:
        expired = [
            event
            for event in self._table.rows()
            if event.status == "active" and as_utc(event.expires_at) < now
        ]
        expired.sort(key=lambda event: as_utc(event.expires_at))
        return expired[:limit]

    async def pending_payouts(self, limit: int = 500) -> Sequence[RandomEventRecord]:
        pending = [event for event in self._table.rows() if event.payout_status == "pending"]
        return pending[:limit]


class InMemoryTransactionRepository:
    def __init__(self, committed: list[TransactionRecord]) -> None:
        self._committed = committed
        self._staged: list[TransactionRecord] = []

    async def add(self, record: TransactionRecord) -> None:
        self._staged.append(deepcopy(record))

    async def recent_for_user(
        self, user_id: str, limit: int = 200
    ) -> Sequence[TransactionRecord]:
        entries = [
            entry for entry in reversed(self._committed + self._staged) if entry.user_id == user_id
        ]
        return [deepcopy(entry) for entry in entries[:limit]]

    async def balance_for_user(self, user_id: str) -> int:
        return sum(
            entry.signed_amount
            for entry in self._committed + self._staged
            if entry.user_id == user_id
        )

    def commit(self) -> None:
        self._committed.extend(self._staged)
        self._staged.clear()


class InMemoryScheduleRepository:
    def __init__(self, table: _StagedTable[ScheduleRecord]) -> None:
        self._table = table

    async def get(self, schedule_id: str) -> ScheduleRecord | None:
        return self._table.get(schedule_id)

    async def add(self, record: ScheduleRecord) -> None:
        self._table.put(record.schedule_id, record)

    async def save(self, record: ScheduleRecord) -> None:
        self._table.put(record.schedule_id, record)

    async def due(self, now: datetime, limit: int = 500) -> Sequence[ScheduleRecord]:
        due = [
            schedule
            for schedule in self._table.rows()
            if schedule.processed_at is None and as_utc(schedule.due_at) <= now
        ]
        due.sort(key=lambda schedule: as_utc(schedule.due_at))
        return due[:limit]

    def all(self) -> list[ScheduleRecord]:
        return self._table.rows()


class InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, storage: "InMemoryStorage") -> None:
        self._users = _StagedTable(storage._users)
        self._wishes = _StagedTable(storage._wishes)
        self._quests = _StagedTable(storage._quests)
        self._events = _StagedTable(storage._events)
        self._schedules = _StagedTable(storage._schedules)
        self.users = InMemoryUserRepository(self._users)
        self.wishes = InMemoryWishRepository(self._wishes)
        self.quests = InMemoryQuestRepository(self._quests)
        self.events = InMemoryRandomEventRepository(self._events)
        self.transactions = InMemoryTransactionRepository(storage._transactions)
        self.schedules = InMemoryScheduleRepository(self._schedules)

    def commit(self) -> None:
        for table in (self._users, self._wishes, self._quests, self._events, self._schedules):
            table.commit()
        self.transactions.commit()


class InMemorySettingsStore(SettingsStore):
    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._descriptions: dict[str, str] = {}

    async def load(self) -> Mapping[str, Any]:
        return deepcopy(self._values)

    async def save(self, key: str, value: Any, description: str | None = None) -> None:
        self._values[key] = deepcopy(value)
        if description:
            self._descriptions[key] = description


class InMemoryStorage(Storage):
    """Single-process storage; units of work are serialised by one lock."""

    def __init__(self, *, settings: Mapping[str, Any] | None = None) -> None:
        self._users: dict[str, UserRecord] = {}
        self._wishes: dict[str, WishRecord] = {}
        self._quests: dict[str, QuestRecord] = {}
        self._events: dict[str, RandomEventRecord] = {}
        self._schedules: dict[str, ScheduleRecord] = {}
        self._transactions: list[TransactionRecord] = []
        self._lock = asyncio.Lock()
        self.settings = InMemorySettingsStore(settings)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[InMemoryUnitOfWork]:
        async with self._lock:
            uow = InMemoryUnitOfWork(self)
            yield uow
            uow.commit()

    def ledger_dump(self) -> list[TransactionRecord]:
        return deepcopy(self._transactions)
