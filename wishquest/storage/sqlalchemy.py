"""SQLAlchemy storage backend for wishquest."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import fields
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Sequence, TypeVar

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    JSON,
    String,
    Text,
    case,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..domain.clock import as_utc, utcnow
from ..domain.exceptions import StorageError
from .base import (
    QuestRecord,
    RandomEventRecord,
    ScheduleRecord,
    SettingsStore,
    TransactionRecord,
    UnitOfWork,
    UserRecord,
    WishRecord,
)

R = TypeVar("R")


class Base(DeclarativeBase):
    pass


class UserTable(Base):
    __tablename__ = "wishquest_users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    telegram_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    partner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mana: Mapped[int] = mapped_column(Integer, default=0)
    mana_spent: Mapped[int] = mapped_column(Integer, default=0)
    rank: Mapped[str] = mapped_column(String(64), default="Private")
    experience_points: Mapped[int] = mapped_column(Integer, default=0)
    daily_quota_used: Mapped[int] = mapped_column(Integer, default=0)
    weekly_quota_used: Mapped[int] = mapped_column(Integer, default=0)
    monthly_quota_used: Mapped[int] = mapped_column(Integer, default=0)
    last_quota_reset: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class WishTable(Base):
    __tablename__ = "wishquest_wishes"

    wish_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    description: Mapped[str] = mapped_column(Text)
    author_id: Mapped[str] = mapped_column(String(64), index=True)
    assignee_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(16), default="active")
    category: Mapped[str] = mapped_column(String(64), default="general")
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False)
    is_gift: Mapped[bool] = mapped_column(Boolean, default=False)
    is_historical: Mapped[bool] = mapped_column(Boolean, default=False)
    enchantments: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class QuestTable(Base):
    __tablename__ = "wishquest_quests"

    quest_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    author_id: Mapped[str] = mapped_column(String(64), index=True)
    assignee_id: Mapped[str] = mapped_column(String(64), index=True)
    category: Mapped[str] = mapped_column(String(64), default="general")
    difficulty: Mapped[str] = mapped_column(String(16), default="easy")
    mana_reward: Mapped[int] = mapped_column(Integer, default=0)
    experience_reward: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payout_status: Mapped[str] = mapped_column(String(16), default="none", index=True)


class RandomEventTable(Base):
    __tablename__ = "wishquest_random_events"

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(64), default="general")
    mana_reward: Mapped[int] = mapped_column(Integer, default=0)
    experience_reward: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="active", index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payout_status: Mapped[str] = mapped_column(String(16), default="none", index=True)


class TransactionTable(Base):
    __tablename__ = "wishquest_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(64), unique=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(8))
    mana_amount: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text)
    transaction_category: Mapped[str] = mapped_column(String(32))
    related_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    experience_gained: Mapped[int] = mapped_column(Integer, default=0)
    extra: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ScheduleTable(Base):
    __tablename__ = "wishquest_schedules"

    schedule_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    kind: Mapped[str] = mapped_column(String(32))
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class SettingTable(Base):
    __tablename__ = "wishquest_economy_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def _read(record_cls: type[R], row: Any) -> R:
    values = {}
    for item in fields(record_cls):  # type: ignore[arg-type]
        value = getattr(row, item.name)
        if isinstance(value, datetime):
            value = as_utc(value)
        elif isinstance(value, dict):
            value = dict(value)
        values[item.name] = value
    return record_cls(**values)


def _write(row: Any, record: Any) -> None:
    for item in fields(record):
        value = getattr(record, item.name)
        if isinstance(value, datetime):
            value = as_utc(value)
        elif isinstance(value, dict):
            value = dict(value)
        setattr(row, item.name, value)


class _Repository:
    table: Any
    record: Any
    key: str

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str) -> Any:
        row = await self._session.get(self.table, key, with_for_update=True)
        return _read(self.record, row) if row is not None else None

    async def add(self, record: Any) -> None:
        if await self._session.get(self.table, getattr(record, self.key)) is not None:
            raise StorageError(f"{self.record.__name__} {getattr(record, self.key)} already exists")
        row = self.table()
        _write(row, record)
        self._session.add(row)

    async def save(self, record: Any) -> None:
        row = await self._session.get(self.table, getattr(record, self.key))
        if row is None:
            row = self.table()
            self._session.add(row)
        _write(row, record)

    async def _select(self, stmt: Any) -> list[Any]:
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_read(self.record, row) for row in rows]


class SQLAlchemyUserRepository(_Repository):
    table = UserTable
    record = UserRecord
    key = "user_id"

    async def list_ids(self) -> Sequence[str]:
        stmt = select(UserTable.user_id).order_by(UserTable.user_id)
        return list((await self._session.execute(stmt)).scalars().all())


class SQLAlchemyWishRepository(_Repository):
    table = WishTable
    record = WishRecord
    key = "wish_id"


class SQLAlchemyQuestRepository(_Repository):
    table = QuestTable
    record = QuestRecord
    key = "quest_id"

    async def count_active_by_author(self, author_id: str) -> int:
        stmt = select(func.count()).select_from(QuestTable).where(
            QuestTable.author_id == author_id, QuestTable.status == "active"
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def list_for_user(
        self, user_id: str, status: str | None = None
    ) -> Sequence[QuestRecord]:
        stmt = select(QuestTable).where(
            (QuestTable.author_id == user_id) | (QuestTable.assignee_id == user_id)
        )
        if status is not None:
            stmt = stmt.where(QuestTable.status == status)
        return await self._select(stmt.order_by(QuestTable.created_at.desc()))

    async def find_expired(self, now: datetime, limit: int = 500) -> Sequence[QuestRecord]:
        stmt = (
            select(QuestTable)
            .where(
                QuestTable.status == "active",
                QuestTable.due_date.is_not(None),
                QuestTable.due_date < as_utc(now),
            )
            .order_by(QuestTable.due_date)
            .limit(limit)
        )
        return await self._select(stmt)

    async def pending_payouts(self, limit: int = 500) -> Sequence[QuestRecord]:
        stmt = select(QuestTable).where(QuestTable.payout_status == "pending").limit(limit)
        return await self._select(stmt)


class SQLAlchemyRandomEventRepository(_Repository):
    table = RandomEventTable
    record = RandomEventRecord
    key = "event_id"

    async def active_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        stmt = select(RandomEventTable).where(
            RandomEventTable.user_id == user_id, RandomEventTable.status == "active"
        )
        return await self._select(stmt.with_for_update())

    async def list_for_user(self, user_id: str) -> Sequence[RandomEventRecord]:
        stmt = (
            select(RandomEventTable)
            .where(RandomEventTable.user_id == user_id)
            .order_by(RandomEventTable.created_at.desc())
        )
        return await self._select(stmt)

    async def find_expired(
        self, now: datetime, limit: int = 500
    ) -> Sequence[RandomEventRecord]:
        stmt = (
            select(RandomEventTable)
            .where(RandomEventTable.status == "active", RandomEventTable.expires_at < as_utc(now))
            .order_by(RandomEventTable.expires_at)
            .limit(limit)
        )
        return await self._select(stmt)

    async def pending_payouts(self, limit: int = 500) -> Sequence[RandomEventRecord]:
        stmt = (
            select(RandomEventTable).where(RandomEventTable.payout_status == "pending").limit(limit)
        )
        return await self._select(stmt)


class SQLAlchemyTransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, record: TransactionRecord) -> None:
        self._session.add(
            TransactionTable(
                transaction_id=record.transaction_id,
                user_id=record.user_id,
                type=record.type,
                mana_amount=record.mana_amount,
                description=record.description,
                transaction_category=record.transaction_category,
                related_entity_id=record.related_entity_id,
                related_entity_type=record.related_entity_type,
                experience_gained=record.experience_gained,
                extra=dict(record.metadata),
                created_at=as_utc(record.created_at),
            )
        )

    async def recent_for_user(
        self, user_id: str, limit: int = 200
    ) -> Sequence[TransactionRecord]:
        stmt = (
            select(TransactionTable)
            .where(TransactionTable.user_id == user_id)
            .order_by(TransactionTable.id.desc())
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            TransactionRecord(
                transaction_id=row.transaction_id,
                user_id=row.user_id,
                type=row.type,
                mana_amount=row.mana_amount,
                description=row.description,
                transaction_category=row.transaction_category,
                related_entity_id=row.related_entity_id,
                related_entity_type=row.related_entity_type,
                experience_gained=row.experience_gained,
                metadata=dict(row.extra or {}),
                created_at=as_utc(row.created_at),
            )
            for row in rows
        ]

    async def balance_for_user(self, user_id: str) -> int:
        signed = case(
            (TransactionTable.type == "credit", TransactionTable.mana_amount),
            else_=-TransactionTable.mana_amount,
        )
        stmt = select(func.coalesce(func.sum(signed), 0)).where(TransactionTable.user_id == user_id)
        return int((await self._session.execute(stmt)).scalar_one())


class SQLAlchemyScheduleRepository(_Repository):
    table = ScheduleTable
    record = ScheduleRecord
    key = "schedule_id"

    async def due(self, now: datetime, limit: int = 500) -> Sequence[ScheduleRecord]:
        stmt = (
            select(ScheduleTable)
            .where(ScheduleTable.processed_at.is_(None), ScheduleTable.due_at <= as_utc(now))
            .order_by(ScheduleTable.due_at)
            .limit(limit)
        )
        return await self._select(stmt)


class SQLAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = SQLAlchemyUserRepository(session)
        self.wishes = SQLAlchemyWishRepository(session)
        self.quests = SQLAlchemyQuestRepository(session)
        self.events = SQLAlchemyRandomEventRepository(session)
        self.transactions = SQLAlchemyTransactionRepository(session)
        self.schedules = SQLAlchemyScheduleRepository(session)


class AsyncSQLAlchemySettingsStore(SettingsStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self) -> Mapping[str, Any]:
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(select(SettingTable))).scalars().all()
                return {row.key: row.value for row in rows}
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load economy settings: {exc}") from exc

    async def save(self, key: str, value: Any, description: str | None = None) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(SettingTable, key)
                    if row is None:
                        row = SettingTable(key=key)
                        session.add(row)
                    row.value = value
                    if description:
                        row.description = description
                    row.updated_at = utcnow()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to save economy setting '{key}': {exc}") from exc


class AsyncSQLAlchemyStorage:
    """Storage whose units of work are database transactions."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(dsn, echo=echo, future=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        self.settings = AsyncSQLAlchemySettingsStore(self._session_factory)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SQLAlchemyUnitOfWork]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield SQLAlchemyUnitOfWork(session)
        except SQLAlchemyError as exc:
            raise StorageError(f"Storage operation failed: {exc}") from exc

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()
