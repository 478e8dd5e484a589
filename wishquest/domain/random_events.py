"""Random event generation, partner-validated completion and replacement."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from random import Random
from typing import Sequence
from uuid import uuid4

from .clock import Clock, as_utc, utcnow
from .economy import EconomyEngine, require_user
from .exceptions import (
    AlreadyActive,
    EventExpired,
    InvalidState,
    NotFound,
    PermissionDenied,
    SelfCompletion,
    WishQuestError,
)
from .ledger import PayoutStatus, TransactionCategory
from .notifications import NotificationType, Outbox
from .settings import EconomySettings
from ..storage.base import RandomEventRecord, ScheduleRecord, Storage, UnitOfWork, UserRecord

logger = logging.getLogger(__name__)

NEXT_EVENT_SCHEDULE = "random_event"


class EventStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class EventTemplate:
    title: str
    description: str
    category: str
    base_reward: int
    base_experience: int


DEFAULT_EVENT_POOL: tuple[EventTemplate, ...] = (
    EventTemplate("Unexpected surprise", "Do something nice for your partner without warning", "romance", 20, 20),
    EventTemplate("Kitchen experiment", "Cook a dish you have never cooked before", "food", 10, 15),
    EventTemplate("Spontaneous walk", "Invite your partner for a walk somewhere new", "activity", 10, 15),
    EventTemplate("Compliment of the day", "Give your partner a sincere compliment about what you value in them", "romance", 10, 10),
    EventTemplate("Helping hand", "Take on a household chore your partner usually does", "home", 20, 15),
    EventTemplate("Creative moment", "Make something by hand for your partner: a drawing, a craft or a letter", "creative", 30, 25),
    EventTemplate("Surprise massage", "Offer your partner a relaxing massage", "romance", 20, 20),
    EventTemplate("Planning ahead", "Talk through your plans for the coming month together", "communication", 10, 15),
    EventTemplate("Photo moment", "Take a nice photo together somewhere unusual", "memory", 10, 10),
    EventTemplate("Music night", "Put on your partner's favourite music and dance together", "entertainment", 20, 20),
    EventTemplate("Health first", "Suggest a workout or a long walk together", "health", 20, 15),
    EventTemplate("Memory lane", "Tell your partner about your favourite memory with them", "communication", 10, 15),
)

CATEGORY_DESCRIPTIONS = {
    "romance": "Romantic gestures",
    "food": "Cooking experiments",
    "activity": "Shared activities",
    "home": "Household help",
    "creative": "Creative projects",
    "communication": "Talking and planning",
    "memory": "Making memories",
    "entertainment": "Entertainment",
    "health": "Health and sport",
}


@dataclass(slots=True)
class EventCompletion:
    event: RandomEventRecord
    rewards_granted: bool
    next_event_at: datetime


@dataclass(slots=True)
class EventSweep:
    expired: int
    regenerated: int


@dataclass(frozen=True, slots=True)
class EventCategory:
    category: str
    count: int
    description: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class EventGenerator:
    """Own the random event lifecycle for each user.

    Only the owner's linked partner can confirm an event; the reward always
    goes to the owner. Completion leaves a ``ScheduleRecord`` for the next
    event that ``process_due_schedules`` consumes.
    """

    def __init__(
        self,
        storage: Storage,
        economy: EconomyEngine,
        *,
        pool: Sequence[EventTemplate] = DEFAULT_EVENT_POOL,
        rng: Random | None = None,
        clock: Clock = utcnow,
    ) -> None:
        if not pool:
            raise ValueError("Event pool must contain at least one template")
        self._storage = storage
        self._economy = economy
        self._pool: tuple[EventTemplate, ...] = tuple(pool)
        self._rng = rng or Random()
        self._clock = clock

    @property
    def pool(self) -> tuple[EventTemplate, ...]:
        return self._pool

    # -- generation ---------------------------------------------------------

    async def generate(self, user_id: str, *, force: bool = False) -> RandomEventRecord:
        settings = await self._economy.settings()
        outbox = Outbox()
        async with self._storage.unit_of_work() as uow:
            user = await require_user(uow, user_id)
            event = await self._generate_in(uow, user, settings, outbox, force=force)
        await self._economy.publish(outbox)
        return event

    async def force_generate(self, user_id: str) -> RandomEventRecord:
        """Replace whatever event the user holds with a fresh one."""
        return await self.generate(user_id, force=True)

    async def _generate_in(
        self,
        uow: UnitOfWork,
        user: UserRecord,
        settings: EconomySettings,
        outbox: Outbox,
        *,
        force: bool = False,
    ) -> RandomEventRecord:
        now = self._clock()
        active = list(await uow.events.active_for_user(user.user_id))
        if active and not force and len(active) >= settings.max_active_events_per_user:
            raise AlreadyActive(f"User {user.user_id} already has an active event")
        if force:
            for current in active:
                current.status = EventStatus.EXPIRED.value
                await uow.events.save(current)
                logger.info("Replaced event %s for %s", current.event_id, user.user_id)

        template = self._rng.choice(self._pool)
        low, high = settings.event_reward_variance
        multiplier = self._rng.uniform(low, high)
        event = RandomEventRecord(
            event_id=uuid4().hex,
            user_id=user.user_id,
            title=template.title,
            description=template.description,
            category=template.category,
            mana_reward=max(1, _round_half_up(template.base_reward * multiplier)),
            experience_reward=max(0, _round_half_up(template.base_experience * multiplier)),
            status=EventStatus.ACTIVE.value,
            expires_at=now + timedelta(hours=settings.event_expiration_hours),
            created_at=now,
        )
        await uow.events.add(event)
        outbox.add(
            NotificationType.EVENT_GENERATED,
            user.user_id,
            {
                "event_id": event.event_id,
                "title": event.title,
                "mana_reward": event.mana_reward,
                "expires_at": event.expires_at.isoformat(),
            },
        )
        logger.info("Generated event %s (%s) for %s", event.event_id, template.title, user.user_id)
        return event

    # -- completion ---------------------------------------------------------

    async def complete(self, event_id: str, completer_id: str) -> EventCompletion:
        settings = await self._economy.settings()
        now = self._clock()
        async with self._storage.unit_of_work() as uow:
            event = await uow.events.get(event_id)
            if event is None:
                raise NotFound("event", event_id)
            if event.status != EventStatus.ACTIVE.value:
                raise InvalidState(
                    f"Cannot complete event with status: {event.status}", status=event.status
                )
            if now > as_utc(event.expires_at):
                raise EventExpired(f"Event {event_id} has expired")
            if completer_id == event.user_id:
                raise SelfCompletion("Only your partner can confirm your event")
            owner = await require_user(uow, event.user_id)
            if owner.partner_id != completer_id:
                raise PermissionDenied("Only the owner's partner can confirm this event")

            event.status = EventStatus.COMPLETED.value
            event.completed_at = now
            event.completed_by = completer_id
            event.payout_status = PayoutStatus.PENDING.value
            await uow.events.save(event)

            low, high = settings.event_generation_interval_hours
            next_event_at = now + timedelta(hours=self._rng.uniform(low, high))
            await uow.schedules.add(
                ScheduleRecord(
                    schedule_id=uuid4().hex,
                    owner_id=owner.user_id,
                    kind=NEXT_EVENT_SCHEDULE,
                    due_at=next_event_at,
                    created_at=now,
                )
            )
        logger.info(
            "Event %s of %s confirmed by %s; next event due %s",
            event_id,
            event.user_id,
            completer_id,
            next_event_at.isoformat(),
        )

        outbox = Outbox()
        rewards_granted = await self._settle(event_id, outbox)
        if rewards_granted:
            event.payout_status = PayoutStatus.GRANTED.value
        outbox.add(
            NotificationType.EVENT_COMPLETED,
            event.user_id,
            {
                "event_id": event.event_id,
                "title": event.title,
                "mana_reward": event.mana_reward,
                "experience_reward": event.experience_reward,
                "completed_by": completer_id,
                "rewards_granted": rewards_granted,
            },
        )
        await self._economy.publish(outbox)
        return EventCompletion(event=event, rewards_granted=rewards_granted, next_event_at=next_event_at)

    async def _settle(self, event_id: str, outbox: Outbox) -> bool:
        try:
            return await self._pay_out(event_id, outbox)
        except WishQuestError:
            logger.error("Payout pending for event %s", event_id, exc_info=True)
            return False

    async def _pay_out(self, event_id: str, outbox: Outbox) -> bool:
        async with self._storage.unit_of_work() as uow:
            event = await uow.events.get(event_id)
            if event is None:
                raise NotFound("event", event_id)
            if event.payout_status != PayoutStatus.PENDING.value:
                return False
            owner = await require_user(uow, event.user_id)
            await self._economy.apply_reward(
                uow,
                owner,
                mana=event.mana_reward,
                experience=event.experience_reward,
                description=f"Random event completion: {event.title}",
                category=TransactionCategory.EVENT_REWARD,
                related_entity_id=event.event_id,
                related_entity_type="random_event",
                outbox=outbox,
            )
            event.payout_status = PayoutStatus.GRANTED.value
            await uow.events.save(event)
        return True

    async def retry_payouts(self, limit: int = 500) -> int:
        async with self._storage.unit_of_work() as uow:
            pending = [event.event_id for event in await uow.events.pending_payouts(limit)]
        outbox = Outbox()
        granted = 0
        for event_id in pending:
            if await self._settle(event_id, outbox):
                granted += 1
        await self._economy.publish(outbox)
        return granted

    # -- sweeps -------------------------------------------------------------

    async def expire_overdue(
        self, now: datetime | None = None, limit: int = 500, *, regenerate: bool = True
    ) -> EventSweep:
        now = as_utc(now or self._clock())
        async with self._storage.unit_of_work() as uow:
            candidates = [event.event_id for event in await uow.events.find_expired(now, limit)]

        outbox = Outbox()
        owners: list[str] = []
        for event_id in candidates:
            try:
                async with self._storage.unit_of_work() as uow:
                    event = await uow.events.get(event_id)
                    if event is None or event.status != EventStatus.ACTIVE.value:
                        continue
                    if as_utc(event.expires_at) >= now:
                        continue
                    event.status = EventStatus.EXPIRED.value
                    await uow.events.save(event)
            except WishQuestError:
                logger.error("Failed to expire event %s", event_id, exc_info=True)
                continue
            owners.append(event.user_id)
            outbox.add(
                NotificationType.EVENT_EXPIRED,
                event.user_id,
                {"event_id": event.event_id, "title": event.title},
            )
        await self._economy.publish(outbox)

        regenerated = 0
        if regenerate:
            for owner_id in dict.fromkeys(owners):
                try:
                    await self.generate(owner_id)
                except AlreadyActive:
                    logger.warning("Skipped regeneration for %s: event already active", owner_id)
                except WishQuestError:
                    logger.error("Failed to regenerate event for %s", owner_id, exc_info=True)
                else:
                    regenerated += 1
        if owners:
            logger.info("Expired %s events, regenerated %s", len(owners), regenerated)
        return EventSweep(expired=len(owners), regenerated=regenerated)

    async def process_due_schedules(self, now: datetime | None = None, limit: int = 500) -> int:
        """Generate events for schedule records that have come due."""
        now = as_utc(now or self._clock())
        settings = await self._economy.settings()
        async with self._storage.unit_of_work() as uow:
            due = [
                schedule.schedule_id
                for schedule in await uow.schedules.due(now, limit)
                if schedule.kind == NEXT_EVENT_SCHEDULE
            ]

        outbox = Outbox()
        generated = 0
        for schedule_id in due:
            try:
                async with self._storage.unit_of_work() as uow:
                    schedule = await uow.schedules.get(schedule_id)
                    if schedule is None or schedule.processed_at is not None:
                        continue
                    schedule.processed_at = now
                    await uow.schedules.save(schedule)
                    owner = await uow.users.get(schedule.owner_id)
                    if owner is None:
                        logger.warning("Schedule %s references unknown user", schedule_id)
                        continue
                    active = await uow.events.active_for_user(owner.user_id)
                    if len(active) >= settings.max_active_events_per_user:
                        continue
                    await self._generate_in(uow, owner, settings, outbox)
            except WishQuestError:
                logger.error("Failed to process schedule %s", schedule_id, exc_info=True)
                continue
            generated += 1
        await self._economy.publish(outbox)
        return generated

    # -- queries ------------------------------------------------------------

    async def current_event(self, user_id: str) -> RandomEventRecord | None:
        async with self._storage.unit_of_work() as uow:
            active = await uow.events.active_for_user(user_id)
        return active[0] if active else None

    async def event_history(self, user_id: str, limit: int | None = None) -> Sequence[RandomEventRecord]:
        async with self._storage.unit_of_work() as uow:
            events = list(await uow.events.list_for_user(user_id))
        return events[:limit] if limit else events

    def event_categories(self) -> list[EventCategory]:
        counts: dict[str, int] = {}
        for template in self._pool:
            counts[template.category] = counts.get(template.category, 0) + 1
        return [
            EventCategory(category, count, CATEGORY_DESCRIPTIONS.get(category, category))
            for category, count in counts.items()
        ]
