"""Quest state machine and reward payout."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Sequence
from uuid import uuid4

from .clock import Clock, as_utc, utcnow
from .economy import EconomyEngine, require_user
from .exceptions import (
    InvalidState,
    NotFound,
    PermissionDenied,
    ValidationError,
    WishQuestError,
)
from .ledger import PayoutStatus, TransactionCategory
from .notifications import NotificationType, Outbox
from .settings import EconomySettings
from ..storage.base import QuestRecord, Storage, UnitOfWork, UserRecord

logger = logging.getLogger(__name__)


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EPIC = "epic"


class QuestStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class QuestDraft:
    title: str
    description: str
    assignee_id: str | None
    difficulty: Difficulty | str = Difficulty.EASY
    category: str = "general"
    due_date: datetime | None = None
    mana_reward: int | None = None
    experience_reward: int | None = None


@dataclass(slots=True)
class QuestUpdate:
    title: str | None = None
    description: str | None = None
    difficulty: Difficulty | str | None = None
    category: str | None = None
    due_date: datetime | None = None
    mana_reward: int | None = None
    experience_reward: int | None = None


@dataclass(slots=True)
class QuestValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(slots=True)
class QuestCreation:
    quest: QuestRecord
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class QuestCompletion:
    quest: QuestRecord
    rewards_granted: bool


@dataclass(slots=True)
class QuestStats:
    created: int
    assigned: int
    completed: int
    active: int
    expired: int
    cancelled: int
    completion_rate: float


def _difficulty(value: Difficulty | str) -> Difficulty | None:
    try:
        return Difficulty(value)
    except ValueError:
        return None


def _reward_errors(mana: int | None, experience: int | None) -> list[str]:
    errors = []
    for label, value in (("mana", mana), ("experience", experience)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            errors.append(f"Quest {label} reward must be a non-negative integer")
    return errors


class QuestEngine:
    """Create, complete, cancel, update and expire quests.

    Completion commits the transition with ``payout_status="pending"`` and
    then pays the assignee in a second unit of work. A failed payout leaves
    the quest completed and pending; ``retry_payouts`` settles it later.
    """

    def __init__(self, storage: Storage, economy: EconomyEngine, *, clock: Clock = utcnow) -> None:
        self._storage = storage
        self._economy = economy
        self._clock = clock

    # -- validation ---------------------------------------------------------

    async def validate_quest_creation(self, author_id: str, draft: QuestDraft) -> QuestValidation:
        settings = await self._economy.settings()
        async with self._storage.unit_of_work() as uow:
            author = await require_user(uow, author_id)
            return await self._validate(uow, author, draft, settings, self._clock())

    async def _validate(
        self,
        uow: UnitOfWork,
        author: UserRecord,
        draft: QuestDraft,
        settings: EconomySettings,
        now: datetime,
    ) -> QuestValidation:
        result = QuestValidation()
        result.errors.extend(self._text_errors(draft.title, draft.description, settings))

        if not draft.assignee_id:
            result.errors.append("Quest must have an assignee")
        elif draft.assignee_id == author.user_id:
            result.errors.append("Cannot assign quest to yourself")
        elif await uow.users.get(draft.assignee_id) is None:
            result.errors.append(f"Assignee {draft.assignee_id} not found")

        active = await uow.quests.count_active_by_author(author.user_id)
        if active >= settings.max_active_quests_per_user:
            result.errors.append(
                f"Maximum active quests limit reached ({settings.max_active_quests_per_user})"
            )

        difficulty = _difficulty(draft.difficulty)
        if difficulty is None:
            result.errors.append(f"Unknown difficulty '{draft.difficulty}'")
        elif not self._may_create(author, difficulty):
            result.errors.append(f"Insufficient rank to create {difficulty.value} difficulty quests")

        result.errors.extend(_reward_errors(draft.mana_reward, draft.experience_reward))

        if draft.due_date is not None:
            error, warning = self._due_date_issues(draft.due_date, settings, now)
            if error:
                result.errors.append(error)
            if warning:
                result.warnings.append(warning)
        return result

    def _text_errors(
        self, title: str | None, description: str | None, settings: EconomySettings
    ) -> list[str]:
        errors = []
        if title is not None and len(title.strip()) < settings.min_quest_title_length:
            errors.append(
                f"Quest title must be at least {settings.min_quest_title_length} characters long"
            )
        if description is not None:
            length = len(description.strip())
            if length < settings.min_quest_description_length:
                errors.append(
                    "Quest description must be at least "
                    f"{settings.min_quest_description_length} characters long"
                )
            elif length > settings.max_quest_description_length:
                errors.append(
                    "Quest description must be at most "
                    f"{settings.max_quest_description_length} characters long"
                )
        return errors

    def _due_date_issues(
        self, due_date: datetime, settings: EconomySettings, now: datetime
    ) -> tuple[str | None, str | None]:
        due = as_utc(due_date)
        if due < now + timedelta(days=settings.quest_min_due_days):
            return (
                f"Quest due date must be at least {settings.quest_min_due_days} day(s) in the future",
                None,
            )
        if due > now + timedelta(days=settings.quest_max_due_days):
            return None, "Quest due date is more than 1 year in the future"
        return None, None

    def _may_create(self, author: UserRecord, difficulty: Difficulty) -> bool:
        ranks = self._economy.ranks
        return ranks.can_create_difficulty(
            ranks.current_rank(author.experience_points), difficulty.value
        )

    # -- transitions --------------------------------------------------------

    async def create_quest(self, author_id: str, draft: QuestDraft) -> QuestCreation:
        settings = await self._economy.settings()
        outbox = Outbox()
        now = self._clock()
        async with self._storage.unit_of_work() as uow:
            author = await require_user(uow, author_id)
            validation = await self._validate(uow, author, draft, settings, now)
            if not validation.is_valid:
                raise ValidationError(validation.errors)

            difficulty = Difficulty(draft.difficulty)
            defaults = settings.quest_rewards[difficulty.value]
            quest = QuestRecord(
                quest_id=uuid4().hex,
                title=draft.title.strip(),
                description=draft.description.strip(),
                author_id=author.user_id,
                assignee_id=str(draft.assignee_id),
                category=draft.category,
                difficulty=difficulty.value,
                mana_reward=(
                    defaults["mana"] if draft.mana_reward is None else draft.mana_reward
                ),
                experience_reward=(
                    defaults["experience"]
                    if draft.experience_reward is None
                    else draft.experience_reward
                ),
                status=QuestStatus.ACTIVE.value,
                due_date=as_utc(draft.due_date) if draft.due_date else None,
                created_at=now,
            )
            await uow.quests.add(quest)

            award = self._economy.award_experience(author, settings.experience_for("quest_create"))
            await uow.users.save(author)
            self._economy.announce_promotion(outbox, author, award.promotion)
            outbox.add(
                NotificationType.QUEST_ASSIGNED,
                quest.assignee_id,
                {
                    "quest_id": quest.quest_id,
                    "title": quest.title,
                    "difficulty": quest.difficulty,
                    "mana_reward": quest.mana_reward,
                    "author_id": author.user_id,
                },
            )

        logger.info("Quest %s created by %s for %s", quest.quest_id, author_id, quest.assignee_id)
        await self._economy.publish(outbox)
        return QuestCreation(quest=quest, warnings=validation.warnings)

    async def complete_quest(self, quest_id: str, user_id: str) -> QuestCompletion:
        async with self._storage.unit_of_work() as uow:
            quest = await self._require(uow, quest_id)
            if quest.author_id != user_id:
                raise PermissionDenied("Only the quest author can mark the quest as completed")
            if quest.status != QuestStatus.ACTIVE.value:
                raise InvalidState(
                    f"Cannot complete quest with status: {quest.status}", status=quest.status
                )
            quest.status = QuestStatus.COMPLETED.value
            quest.completed_at = self._clock()
            quest.payout_status = PayoutStatus.PENDING.value
            await uow.quests.save(quest)
        logger.info("Quest %s completed by %s", quest_id, user_id)

        outbox = Outbox()
        rewards_granted = await self._settle(quest_id, outbox)
        if rewards_granted:
            quest.payout_status = PayoutStatus.GRANTED.value
        outbox.add(
            NotificationType.QUEST_COMPLETED,
            quest.assignee_id,
            {
                "quest_id": quest.quest_id,
                "title": quest.title,
                "mana_reward": quest.mana_reward,
                "rewards_granted": rewards_granted,
            },
        )
        await self._economy.publish(outbox)
        return QuestCompletion(quest=quest, rewards_granted=rewards_granted)

    async def _settle(self, quest_id: str, outbox: Outbox) -> bool:
        try:
            return await self._pay_out(quest_id, outbox)
        except WishQuestError:
            logger.error("Payout pending for quest %s", quest_id, exc_info=True)
            return False

    async def _pay_out(self, quest_id: str, outbox: Outbox) -> bool:
        settings = await self._economy.settings()
        async with self._storage.unit_of_work() as uow:
            quest = await self._require(uow, quest_id)
            if quest.payout_status != PayoutStatus.PENDING.value:
                return False
            assignee = await require_user(uow, quest.assignee_id)
            experience = int(quest.experience_reward * settings.category_multiplier(quest.category))
            await self._economy.apply_reward(
                uow,
                assignee,
                mana=quest.mana_reward,
                experience=experience,
                description=f"Quest completion reward: {quest.title}",
                category=TransactionCategory.QUEST_REWARD,
                related_entity_id=quest.quest_id,
                related_entity_type="quest",
                outbox=outbox,
            )
            quest.payout_status = PayoutStatus.GRANTED.value
            await uow.quests.save(quest)
        logger.info("Paid %s mana to %s for quest %s", quest.mana_reward, quest.assignee_id, quest_id)
        return True

    async def retry_payouts(self, limit: int = 500) -> int:
        async with self._storage.unit_of_work() as uow:
            pending = [quest.quest_id for quest in await uow.quests.pending_payouts(limit)]
        outbox = Outbox()
        granted = 0
        for quest_id in pending:
            if await self._settle(quest_id, outbox):
                granted += 1
        await self._economy.publish(outbox)
        return granted

    async def cancel_quest(self, quest_id: str, user_id: str) -> QuestRecord:
        async with self._storage.unit_of_work() as uow:
            quest = await self._require(uow, quest_id)
            if quest.author_id != user_id:
                raise PermissionDenied("Only the quest author can cancel the quest")
            if quest.status != QuestStatus.ACTIVE.value:
                raise InvalidState(
                    f"Cannot cancel quest with status: {quest.status}", status=quest.status
                )
            quest.status = QuestStatus.CANCELLED.value
            await uow.quests.save(quest)
        logger.info("Quest %s cancelled by %s", quest_id, user_id)
        outbox = Outbox()
        outbox.add(
            NotificationType.QUEST_CANCELLED,
            quest.assignee_id,
            {"quest_id": quest.quest_id, "title": quest.title},
        )
        await self._economy.publish(outbox)
        return quest

    async def update_quest(self, quest_id: str, user_id: str, update: QuestUpdate) -> QuestRecord:
        settings = await self._economy.settings()
        async with self._storage.unit_of_work() as uow:
            quest = await self._require(uow, quest_id)
            if quest.author_id != user_id:
                raise PermissionDenied("Only the quest author can update the quest")
            if quest.status != QuestStatus.ACTIVE.value:
                raise InvalidState(
                    f"Cannot update quest with status: {quest.status}", status=quest.status
                )

            errors = self._text_errors(update.title, update.description, settings)
            errors.extend(_reward_errors(update.mana_reward, update.experience_reward))
            if update.due_date is not None:
                error, _ = self._due_date_issues(update.due_date, settings, self._clock())
                if error:
                    errors.append(error)
            difficulty = None
            if update.difficulty is not None:
                difficulty = _difficulty(update.difficulty)
                if difficulty is None:
                    errors.append(f"Unknown difficulty '{update.difficulty}'")
            if errors:
                raise ValidationError(errors)

            if difficulty is not None and difficulty.value != quest.difficulty:
                author = await require_user(uow, user_id)
                if not self._may_create(author, difficulty):
                    raise PermissionDenied(
                        f"Insufficient rank to set difficulty to {difficulty.value}"
                    )
                defaults = settings.quest_rewards[difficulty.value]
                quest.difficulty = difficulty.value
                quest.mana_reward = defaults["mana"]
                quest.experience_reward = defaults["experience"]

            if update.title is not None:
                quest.title = update.title.strip()
            if update.description is not None:
                quest.description = update.description.strip()
            if update.category is not None:
                quest.category = update.category
            if update.due_date is not None:
                quest.due_date = as_utc(update.due_date)
            if update.mana_reward is not None:
                quest.mana_reward = update.mana_reward
            if update.experience_reward is not None:
                quest.experience_reward = update.experience_reward
            await uow.quests.save(quest)
        logger.info("Quest %s updated by %s", quest_id, user_id)
        return quest

    async def expire_overdue(self, now: datetime | None = None, limit: int = 500) -> int:
        """Expire active quests past their due date, one unit of work per quest."""
        now = as_utc(now or self._clock())
        async with self._storage.unit_of_work() as uow:
            candidates = [quest.quest_id for quest in await uow.quests.find_expired(now, limit)]

        outbox = Outbox()
        expired = 0
        for quest_id in candidates:
            try:
                async with self._storage.unit_of_work() as uow:
                    quest = await uow.quests.get(quest_id)
                    if quest is None or quest.status != QuestStatus.ACTIVE.value:
                        continue
                    if quest.due_date is None or as_utc(quest.due_date) >= now:
                        continue
                    quest.status = QuestStatus.EXPIRED.value
                    await uow.quests.save(quest)
            except WishQuestError:
                logger.error("Failed to expire quest %s", quest_id, exc_info=True)
                continue
            expired += 1
            for recipient in (quest.author_id, quest.assignee_id):
                outbox.add(
                    NotificationType.QUEST_EXPIRED,
                    recipient,
                    {"quest_id": quest.quest_id, "title": quest.title},
                )
        if expired:
            logger.info("Expired %s overdue quests", expired)
        await self._economy.publish(outbox)
        return expired

    # -- queries ------------------------------------------------------------

    async def get_quest(self, quest_id: str) -> QuestRecord:
        async with self._storage.unit_of_work() as uow:
            return await self._require(uow, quest_id)

    async def get_user_quests(
        self,
        user_id: str,
        *,
        status: QuestStatus | str | None = None,
        role: str = "both",
        limit: int | None = None,
    ) -> Sequence[QuestRecord]:
        status_value = QuestStatus(status).value if status is not None else None
        async with self._storage.unit_of_work() as uow:
            quests = list(await uow.quests.list_for_user(user_id, status_value))
        if role == "author":
            quests = [quest for quest in quests if quest.author_id == user_id]
        elif role == "assignee":
            quests = [quest for quest in quests if quest.assignee_id == user_id]
        elif role != "both":
            raise ValidationError(f"Unknown quest role '{role}'")
        return quests[:limit] if limit else quests

    async def get_quest_stats(self, user_id: str) -> QuestStats:
        async with self._storage.unit_of_work() as uow:
            quests = list(await uow.quests.list_for_user(user_id))
        assigned = [quest for quest in quests if quest.assignee_id == user_id]
        completed_assigned = sum(
            1 for quest in assigned if quest.status == QuestStatus.COMPLETED.value
        )
        rate = (completed_assigned / len(assigned)) * 100 if assigned else 0.0

        def count(status: QuestStatus) -> int:
            return sum(1 for quest in quests if quest.status == status.value)

        return QuestStats(
            created=sum(1 for quest in quests if quest.author_id == user_id),
            assigned=len(assigned),
            completed=count(QuestStatus.COMPLETED),
            active=count(QuestStatus.ACTIVE),
            expired=count(QuestStatus.EXPIRED),
            cancelled=count(QuestStatus.CANCELLED),
            completion_rate=round(rate, 2),
        )

    async def _require(self, uow: UnitOfWork, quest_id: str) -> QuestRecord:
        quest = await uow.quests.get(quest_id)
        if quest is None:
            raise NotFound("quest", quest_id)
        return quest
