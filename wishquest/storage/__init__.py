"""Storage backends for wishquest."""

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
from .memory import InMemorySettingsStore, InMemoryStorage
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "QuestRecord",
    "RandomEventRecord",
    "ScheduleRecord",
    "SettingsStore",
    "Storage",
    "TransactionRecord",
    "UnitOfWork",
    "UserRecord",
    "WishRecord",
    "InMemorySettingsStore",
    "InMemoryStorage",
    "AsyncSQLAlchemyStorage",
]
