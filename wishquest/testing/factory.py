"""Factories for tests and prototyping."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from random import Random
from typing import Iterable

from faker import Faker

from ..domain.clock import utcnow
from ..domain.quests import Difficulty, QuestDraft
from ..domain.wishes import WishDraft
from ..storage.base import UserRecord


@dataclass(slots=True)
class UserFactory:
    faker: Faker = field(default_factory=Faker)

    def build(self, user_id: str | None = None, *, partner_id: str | None = None) -> UserRecord:
        user_id = user_id or f"user_{self.faker.unique.lexify(text='????????')}"
        return UserRecord(
            user_id=user_id,
            name=self.faker.first_name(),
            telegram_id=self.faker.random_int(min=10_000, max=99_999_999),
            partner_id=partner_id,
        )

    def couple(self) -> tuple[UserRecord, UserRecord]:
        first = self.build()
        second = self.build(partner_id=first.user_id)
        first.partner_id = second.user_id
        return first, second


@dataclass(slots=True)
class QuestDraftFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(
        self,
        assignee_id: str,
        difficulty: Difficulty | None = None,
        *,
        now: datetime | None = None,
    ) -> QuestDraft:
        now = now or utcnow()
        return QuestDraft(
            title=self.faker.catch_phrase(),
            description=self.faker.text(max_nb_chars=200),
            assignee_id=assignee_id,
            difficulty=difficulty or Difficulty.EASY,
            due_date=now + timedelta(days=self.rng.randint(2, 30)),
        )

    def batch(self, count: int, assignee_id: str) -> Iterable[QuestDraft]:
        for _ in range(count):
            yield self.build(assignee_id)


@dataclass(slots=True)
class WishDraftFactory:
    faker: Faker = field(default_factory=Faker)

    def build(self, assignee_id: str | None = None, category: str = "general") -> WishDraft:
        return WishDraft(
            description=self.faker.sentence(nb_words=6),
            assignee_id=assignee_id,
            category=category,
        )
