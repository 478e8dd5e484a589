"""Append-only mana ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import uuid4

from .clock import Clock, utcnow
from .exceptions import InsufficientMana, InvalidAmount
from ..storage.base import TransactionRecord, UnitOfWork, UserRecord

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, Enum):
    QUEST_REWARD = "quest_reward"
    EVENT_REWARD = "event_reward"
    GIFT_SENT = "gift_sent"
    GIFT_RECEIVED = "gift_received"
    ENCHANTMENT = "enchantment"
    MIGRATION = "migration"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class PayoutStatus(str, Enum):
    """Reward state of a completed quest or event."""

    NONE = "none"
    PENDING = "pending"
    GRANTED = "granted"


class Ledger:
    """Pair every balance change with exactly one ledger entry.

    ``record`` mutates the in-memory ``UserRecord`` and stages the entry on the
    same unit of work; the caller persists the user before the unit commits.
    """

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock

    async def record(
        self,
        uow: UnitOfWork,
        user: UserRecord,
        *,
        direction: Direction,
        amount: int,
        description: str,
        category: str,
        related_entity_id: str | None = None,
        related_entity_type: str | None = None,
        experience_gained: int = 0,
        metadata: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> TransactionRecord:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(f"Mana amount must be a non-negative integer, got {amount!r}")
        direction = Direction(direction)
        if direction is Direction.DEBIT:
            if user.mana < amount:
                raise InsufficientMana(required=amount, available=user.mana)
            user.mana -= amount
        else:
            user.mana += amount

        entry = TransactionRecord(
            transaction_id=uuid4().hex,
            user_id=user.user_id,
            type=direction.value,
            mana_amount=amount,
            description=description,
            transaction_category=str(getattr(category, "value", category)),
            related_entity_id=related_entity_id,
            related_entity_type=related_entity_type,
            experience_gained=experience_gained,
            metadata=dict(metadata or {}),
            created_at=timestamp or self._clock(),
        )
        await uow.transactions.add(entry)
        logger.debug(
            "Ledger %s %s mana for user %s (%s)",
            direction.value,
            amount,
            user.user_id,
            entry.transaction_category,
        )
        return entry

    async def reconcile(self, uow: UnitOfWork, user: UserRecord) -> bool:
        """Return True when the stored balance matches the signed ledger sum."""
        return await uow.transactions.balance_for_user(user.user_id) == user.mana
