"""Periodic maintenance hooks invoked by an external scheduler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from .clock import Clock, as_utc, utcnow
from .economy import EconomyEngine
from .exceptions import WishQuestError
from .notifications import Outbox
from .quests import QuestEngine
from .random_events import EventGenerator
from .ranks import Promotion
from ..storage.base import Storage

logger = logging.getLogger(__name__)

MAINTENANCE_TASKS: tuple[str, ...] = (
    "expire_quests",
    "expire_events",
    "reset_quotas",
    "recalculate_ranks",
    "retry_payouts",
    "process_schedules",
)


@dataclass(slots=True)
class TaskResult:
    name: str
    processed: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class MaintenanceReport:
    started_at: datetime
    finished_at: datetime | None = None
    results: list[TaskResult] = field(default_factory=list)

    @property
    def failed(self) -> list[TaskResult]:
        return [result for result in self.results if not result.ok]

    def get(self, name: str) -> TaskResult | None:
        return next((result for result in self.results if result.name == name), None)


class MaintenanceService:
    """Sweeps that are idempotent and touch one row per unit of work."""

    def __init__(
        self,
        storage: Storage,
        economy: EconomyEngine,
        quests: QuestEngine,
        events: EventGenerator,
        *,
        batch_size: int = 500,
        clock: Clock = utcnow,
    ) -> None:
        self._storage = storage
        self._economy = economy
        self._quests = quests
        self._events = events
        self._batch_size = batch_size
        self._clock = clock

    async def expire_quests(self, now: datetime | None = None) -> TaskResult:
        expired = await self._quests.expire_overdue(now, self._batch_size)
        return TaskResult("expire_quests", expired)

    async def expire_events(self, now: datetime | None = None) -> TaskResult:
        sweep = await self._events.expire_overdue(now, self._batch_size)
        return TaskResult("expire_events", sweep.expired, {"regenerated": sweep.regenerated})

    async def reset_quotas(self, now: datetime | None = None) -> TaskResult:
        now = as_utc(now or self._clock())
        reset = 0
        failed = 0
        for user_id in await self._user_ids():
            try:
                if await self._economy.check_and_reset_quotas(user_id, now):
                    reset += 1
            except WishQuestError:
                failed += 1
                logger.error("Quota reset failed for %s", user_id, exc_info=True)
        if reset:
            logger.info("Reset quotas for %s users", reset)
        return TaskResult("reset_quotas", reset, {"failed": failed})

    async def recalculate_ranks(self, now: datetime | None = None) -> TaskResult:
        ranks = self._economy.ranks
        outbox = Outbox()
        changed = 0
        for user_id in await self._user_ids():
            try:
                async with self._storage.unit_of_work() as uow:
                    user = await uow.users.get(user_id)
                    if user is None:
                        continue
                    expected = ranks.current_rank(user.experience_points)
                    if user.rank == expected.name:
                        continue
                    previous = user.rank
                    user.rank = expected.name
                    await uow.users.save(user)
            except WishQuestError:
                logger.error("Rank recalculation failed for %s", user_id, exc_info=True)
                continue
            changed += 1
            logger.info("Rank of %s corrected from %s to %s", user_id, previous, expected.name)
            try:
                old_rank = ranks.get(previous)
            except KeyError:
                old_rank = None
            if old_rank is None or old_rank.min_experience < expected.min_experience:
                promotion = Promotion(True, old_rank or ranks.all()[0], expected)
                self._economy.announce_promotion(outbox, user, promotion)
        await self._economy.publish(outbox)
        return TaskResult("recalculate_ranks", changed)

    async def retry_payouts(self, now: datetime | None = None) -> TaskResult:
        quests = await self._quests.retry_payouts(self._batch_size)
        events = await self._events.retry_payouts(self._batch_size)
        return TaskResult("retry_payouts", quests + events, {"quests": quests, "events": events})

    async def process_schedules(self, now: datetime | None = None) -> TaskResult:
        generated = await self._events.process_due_schedules(now, self._batch_size)
        return TaskResult("process_schedules", generated)

    async def run_task(self, name: str, now: datetime | None = None) -> TaskResult:
        if name not in MAINTENANCE_TASKS:
            raise ValueError(f"Unknown maintenance task '{name}'")
        return await getattr(self, name)(now)

    async def run_cycle(
        self, tasks: Iterable[str] | None = None, now: datetime | None = None
    ) -> MaintenanceReport:
        """Run each hook once; a failing hook does not stop the others."""
        names = list(tasks or MAINTENANCE_TASKS)
        unknown = [name for name in names if name not in MAINTENANCE_TASKS]
        if unknown:
            raise ValueError(f"Unknown maintenance task(s): {', '.join(unknown)}")
        report = MaintenanceReport(started_at=self._clock())
        for name in names:
            try:
                result = await self.run_task(name, now)
            except Exception as exc:  # noqa: BLE001 - reported per task
                logger.exception("Maintenance task %s failed", name)
                result = TaskResult(name, error=str(exc) or exc.__class__.__name__)
            report.results.append(result)
        report.finished_at = self._clock()
        logger.info(
            "Maintenance cycle finished: %s",
            ", ".join(f"{result.name}={result.processed}" for result in report.results),
        )
        return report

    async def _user_ids(self) -> list[str]:
        async with self._storage.unit_of_work() as uow:
            return list(await uow.users.list_ids())
