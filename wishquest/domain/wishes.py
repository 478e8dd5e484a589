"""Wish lifecycle: create, fulfil, cancel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import uuid4

from .clock import Clock, utcnow
from .economy import EconomyEngine, require_user
from .enchantments import EnchantmentSet
from .exceptions import InvalidState, NotFound, PermissionDenied, ValidationError
from .notifications import NotificationType, Outbox
from ..storage.base import Storage, UnitOfWork, WishRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WishDraft:
    description: str
    assignee_id: str | None = None
    category: str = "general"
    is_shared: bool = False
    is_historical: bool = False


class WishService:
    def __init__(self, storage: Storage, economy: EconomyEngine, *, clock: Clock = utcnow) -> None:
        self._storage = storage
        self._economy = economy
        self._clock = clock

    async def create_wish(self, author_id: str, draft: WishDraft) -> WishRecord:
        settings = await self._economy.settings()
        description = draft.description.strip()
        errors = []
        if len(description) < settings.min_wish_description_length:
            errors.append(
                f"Description must be at least {settings.min_wish_description_length} characters"
            )
        if len(description) > settings.max_wish_description_length:
            errors.append(
                f"Description must be at most {settings.max_wish_description_length} characters"
            )
        if draft.assignee_id == author_id:
            errors.append("Assignee must be different from the author")
        if errors:
            raise ValidationError(errors)

        async with self._storage.unit_of_work() as uow:
            await require_user(uow, author_id)
            if draft.assignee_id is not None:
                await require_user(uow, draft.assignee_id)
            wish = WishRecord(
                wish_id=uuid4().hex,
                description=description,
                author_id=author_id,
                assignee_id=draft.assignee_id,
                category=draft.category,
                is_shared=draft.is_shared,
                is_historical=draft.is_historical,
                enchantments=EnchantmentSet().to_dict(),
                created_at=self._clock(),
            )
            await uow.wishes.add(wish)
        logger.info("User %s created wish %s", author_id, wish.wish_id)
        return wish

    async def complete_wish(self, wish_id: str, user_id: str) -> WishRecord:
        settings = await self._economy.settings()
        outbox = Outbox()
        async with self._storage.unit_of_work() as uow:
            wish = await self._require_active(uow, wish_id)
            if wish.assignee_id != user_id:
                raise PermissionDenied("Only the assignee can fulfil a wish")
            wish.status = "completed"
            wish.completed_at = self._clock()
            await uow.wishes.save(wish)

            assignee = await require_user(uow, user_id)
            award = self._economy.award_experience(assignee, settings.experience_for("wish_fulfill"))
            await uow.users.save(assignee)
            self._economy.announce_promotion(outbox, assignee, award.promotion)
            outbox.add(
                NotificationType.WISH_COMPLETED,
                wish.author_id,
                {"wish_id": wish.wish_id, "description": wish.description, "completed_by": user_id},
            )
        logger.info("Wish %s fulfilled by %s", wish_id, user_id)
        await self._economy.publish(outbox)
        return wish

    async def cancel_wish(self, wish_id: str, user_id: str) -> WishRecord:
        async with self._storage.unit_of_work() as uow:
            wish = await self._require_active(uow, wish_id)
            if wish.author_id != user_id:
                raise PermissionDenied("Only the author can cancel a wish")
            wish.status = "cancelled"
            await uow.wishes.save(wish)
        logger.info("Wish %s cancelled by %s", wish_id, user_id)
        return wish

    async def _require_active(self, uow: UnitOfWork, wish_id: str) -> WishRecord:
        wish = await uow.wishes.get(wish_id)
        if wish is None:
            raise NotFound("wish", wish_id)
        if wish.status != "active":
            raise InvalidState(f"Wish {wish_id} is already {wish.status}", status=wish.status)
        return wish
