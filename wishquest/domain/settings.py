"""Live-tunable economy settings.

Settings are stored as a key/value bag and read at call time so that costs,
limits and reward tables can be tuned without redeploying the engine. Only
``SettingsService.update`` writes them; gameplay operations never do.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from .exceptions import ValidationError
from ..storage.base import SettingsStore


def _default_enchantment_costs() -> dict[str, int]:
    return {"priority": 5, "aura": 2, "linked_wish": 10, "recurring": 50}


def _default_priority_multipliers() -> dict[int, int]:
    return {1: 0, 2: 1, 3: 2, 4: 4, 5: 8}


def _default_quest_rewards() -> dict[str, dict[str, int]]:
    return {
        "easy": {"mana": 10, "experience": 10},
        "medium": {"mana": 20, "experience": 25},
        "hard": {"mana": 30, "experience": 50},
        "epic": {"mana": 50, "experience": 100},
    }


def _default_experience_per_action() -> dict[str, int]:
    return {
        "quest_complete": 20,
        "quest_create": 10,
        "event_complete": 15,
        "wish_fulfill": 25,
        "gift_sent": 2,
        "daily_login": 2,
    }


def _default_category_multipliers() -> dict[str, float]:
    return {"romance": 1.2, "travel": 1.5, "sport": 1.1, "education": 1.3}


@dataclass(slots=True)
class EconomySettings:
    daily_gift_base_limit: int = 5
    weekly_gift_base_limit: int = 20
    monthly_gift_base_limit: int = 50
    enchantment_costs: dict[str, int] = field(default_factory=_default_enchantment_costs)
    priority_cost_multiplier: dict[int, int] = field(default_factory=_default_priority_multipliers)
    quest_rewards: dict[str, dict[str, int]] = field(default_factory=_default_quest_rewards)
    experience_per_action: dict[str, int] = field(default_factory=_default_experience_per_action)
    category_experience_multiplier: dict[str, float] = field(
        default_factory=_default_category_multipliers
    )
    max_active_quests_per_user: int = 10
    max_active_events_per_user: int = 1
    event_expiration_hours: int = 24
    event_generation_interval_hours: tuple[float, float] = (2.0, 8.0)
    event_reward_variance: tuple[float, float] = (0.8, 1.2)
    min_quest_title_length: int = 3
    min_quest_description_length: int = 10
    max_quest_description_length: int = 500
    min_wish_description_length: int = 3
    max_wish_description_length: int = 200
    quest_min_due_days: int = 1
    quest_max_due_days: int = 365

    @classmethod
    def keys(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EconomySettings":
        """Overlay stored values on top of the defaults."""
        settings = cls()
        for key, value in data.items():
            if key not in cls.keys():
                continue
            setattr(settings, key, _coerce(key, value))
        return settings

    def to_mapping(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key in self.keys():
            value = getattr(self, key)
            if key == "priority_cost_multiplier":
                value = {str(level): multiplier for level, multiplier in value.items()}
            elif isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, dict):
                value = {k: (dict(v) if isinstance(v, dict) else v) for k, v in value.items()}
            data[key] = value
        return data

    def experience_for(self, action: str) -> int:
        return int(self.experience_per_action.get(action, 0))

    def category_multiplier(self, category: str | None) -> float:
        if not category:
            return 1.0
        return float(self.category_experience_multiplier.get(category, 1.0))


def _coerce(key: str, value: Any) -> Any:
    if key == "priority_cost_multiplier":
        return {int(level): int(multiplier) for level, multiplier in dict(value).items()}
    if key == "enchantment_costs":
        return {str(name): int(cost) for name, cost in dict(value).items()}
    if key == "quest_rewards":
        return {
            str(difficulty): {"mana": int(table["mana"]), "experience": int(table["experience"])}
            for difficulty, table in dict(value).items()
        }
    if key == "experience_per_action":
        return {str(action): int(points) for action, points in dict(value).items()}
    if key == "category_experience_multiplier":
        return {str(category): float(mult) for category, mult in dict(value).items()}
    if key in ("event_generation_interval_hours", "event_reward_variance"):
        low, high = value
        return (float(low), float(high))
    return int(value)


class SettingsService:
    """Read path for settings plus the explicit admin update operation."""

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    async def current(self) -> EconomySettings:
        return EconomySettings.from_mapping(await self._store.load())

    async def update(self, key: str, value: Any, description: str | None = None) -> EconomySettings:
        from ..validators import validate_settings

        if key not in EconomySettings.keys():
            raise ValidationError(f"Unknown economy setting '{key}'")
        stored = dict(await self._store.load())
        stored[key] = value
        try:
            candidate = EconomySettings.from_mapping(stored)
        except (TypeError, ValueError, KeyError) as exc:
            raise ValidationError(f"Invalid value for '{key}': {exc}") from exc
        errors = validate_settings(candidate)
        if errors:
            raise ValidationError(errors)
        await self._store.save(key, candidate.to_mapping()[key], description)
        return candidate
