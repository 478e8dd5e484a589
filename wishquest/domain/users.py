"""User registration, partner linking and profiles."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .clock import Clock, utcnow
from .economy import require_user
from .exceptions import PermissionDenied, StorageError, ValidationError
from .ranks import RankCalculator, RankProgress
from ..storage.base import Storage, UserRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserProfile:
    user_id: str
    name: str
    partner_id: str | None
    mana: int
    mana_spent: int
    experience_points: int
    rank: str
    progress: RankProgress
    daily_quota_used: int
    weekly_quota_used: int
    monthly_quota_used: int


class UserService:
    """Expose read/write operations for user state."""

    def __init__(
        self,
        storage: Storage,
        *,
        ranks: RankCalculator | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._storage = storage
        self._ranks = ranks or RankCalculator()
        self._clock = clock

    async def register(
        self, user_id: str, name: str = "", telegram_id: int | None = None
    ) -> UserProfile:
        if not user_id:
            raise ValidationError("User id is required")
        async with self._storage.unit_of_work() as uow:
            if await uow.users.get(user_id) is not None:
                raise StorageError(f"User {user_id} already exists")
            now = self._clock()
            record = UserRecord(
                user_id=user_id,
                name=name,
                telegram_id=telegram_id,
                rank=self._ranks.current_rank(0).name,
                last_quota_reset=now,
                created_at=now,
            )
            await uow.users.add(record)
        logger.info("Registered user %s", user_id)
        return self._to_profile(record)

    async def link_partners(self, first_id: str, second_id: str) -> tuple[UserProfile, UserProfile]:
        if first_id == second_id:
            raise ValidationError("A user cannot be their own partner")
        async with self._storage.unit_of_work() as uow:
            first = await require_user(uow, first_id)
            second = await require_user(uow, second_id)
            for user, other in ((first, second), (second, first)):
                if user.partner_id not in (None, other.user_id):
                    raise PermissionDenied(f"User {user.user_id} already has a partner")
            first.partner_id = second.user_id
            second.partner_id = first.user_id
            await uow.users.save(first)
            await uow.users.save(second)
        logger.info("Linked partners %s and %s", first_id, second_id)
        return self._to_profile(first), self._to_profile(second)

    async def fetch(self, user_id: str) -> UserProfile:
        async with self._storage.unit_of_work() as uow:
            record = await require_user(uow, user_id)
        return self._to_profile(record)

    def _to_profile(self, record: UserRecord) -> UserProfile:
        return UserProfile(
            user_id=record.user_id,
            name=record.name,
            partner_id=record.partner_id,
            mana=record.mana,
            mana_spent=record.mana_spent,
            experience_points=record.experience_points,
            rank=record.rank,
            progress=self._ranks.progress(record.experience_points),
            daily_quota_used=record.daily_quota_used,
            weekly_quota_used=record.weekly_quota_used,
            monthly_quota_used=record.monthly_quota_used,
        )
