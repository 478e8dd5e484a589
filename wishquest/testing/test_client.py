"""Async scenario client driving a couple through the engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from ..app import EngineApp
from ..domain.economy import EnchantRequest, GiftRequest
from ..domain.quests import QuestDraft
from ..domain.users import UserProfile


@dataclass(slots=True)
class ScenarioStep:
    text: str
    metadata: Dict[str, Any]


class CoupleClient:
    """Facilitate scenario testing without Telegram HTTP calls."""

    def __init__(self, app: EngineApp, first_id: str = "alice", second_id: str = "bob") -> None:
        self._app = app
        self.first_id = first_id
        self.second_id = second_id
        self._log: List[ScenarioStep] = []

    async def register(self) -> tuple[UserProfile, UserProfile]:
        first = await self._app.users.register(self.first_id, self.first_id.title())
        second = await self._app.users.register(self.second_id, self.second_id.title())
        await self._app.users.link_partners(self.first_id, self.second_id)
        self._log.append(
            ScenarioStep(
                text=f"Linked {self.first_id} and {self.second_id}",
                metadata={"users": [first.user_id, second.user_id]},
            )
        )
        return first, second

    async def seed(self, user_id: str, **fields: Any) -> None:
        """Overwrite stored user fields, e.g. ``mana`` or ``experience_points``."""
        async with self._app.storage.unit_of_work() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise KeyError(user_id)
            for name, value in fields.items():
                setattr(user, name, value)
            await uow.users.save(user)

    async def gift(self, sender_id: str, recipient_id: str, amount: int = 1) -> None:
        outcome = await self._app.economy.gift_wish(
            sender_id, GiftRequest(recipient_id=recipient_id, amount=amount)
        )
        self._log.append(
            ScenarioStep(
                text=f"{sender_id} gifted {amount} to {recipient_id}",
                metadata={
                    "wish_id": outcome.wish.wish_id,
                    "remaining_quota": outcome.remaining_quota,
                },
            )
        )

    async def enchant(self, user_id: str, wish_id: str, kind: str, **params: Any) -> None:
        outcome = await self._app.economy.enchant_wish(
            user_id, EnchantRequest(wish_id=wish_id, enchantment_type=kind, **params)
        )
        self._log.append(
            ScenarioStep(
                text=f"{user_id} applied {kind} to {wish_id}",
                metadata={"cost": outcome.cost, "balance": outcome.balance},
            )
        )

    async def quest(self, author_id: str, draft: QuestDraft) -> str:
        creation = await self._app.quests.create_quest(author_id, draft)
        self._log.append(
            ScenarioStep(
                text=f"{author_id} assigned {creation.quest.title}",
                metadata={"quest_id": creation.quest.quest_id, "warnings": creation.warnings},
            )
        )
        return creation.quest.quest_id

    async def accept(self, author_id: str, quest_id: str) -> None:
        completion = await self._app.quests.complete_quest(quest_id, author_id)
        self._log.append(
            ScenarioStep(
                text=f"{author_id} accepted {quest_id}",
                metadata={"rewards_granted": completion.rewards_granted},
            )
        )

    def history(self) -> List[ScenarioStep]:
        return list(self._log)
