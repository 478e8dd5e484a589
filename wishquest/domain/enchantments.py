"""Wish enchantments and their pricing."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from .exceptions import InvalidLevel, InvalidValue, UnknownEnchantmentType
from .settings import EconomySettings


class EnchantmentType(str, Enum):
    PRIORITY = "priority"
    AURA = "aura"
    LINKED_WISH = "linked_wish"
    RECURRING = "recurring"


class Aura(str, Enum):
    ROMANTIC = "romantic"
    URGENT = "urgent"
    PLAYFUL = "playful"
    MYSTERIOUS = "mysterious"


class Recurrence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True, slots=True)
class EnchantmentSet:
    """Current enchantment state of a wish."""

    priority: int = 1
    aura: Aura | None = None
    linked_wish_id: str | None = None
    recurrence: Recurrence | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "aura": self.aura.value if self.aura else None,
            "is_linked": self.linked_wish_id is not None,
            "linked_wish_id": self.linked_wish_id,
            "is_recurring": self.recurrence is not None,
            "recurrence_interval": self.recurrence.value if self.recurrence else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EnchantmentSet":
        data = data or {}
        aura = data.get("aura")
        recurrence = data.get("recurrence_interval")
        return cls(
            priority=int(data.get("priority", 1) or 1),
            aura=Aura(aura) if aura else None,
            linked_wish_id=data.get("linked_wish_id") or None,
            recurrence=Recurrence(recurrence) if recurrence else None,
        )


@dataclass(frozen=True, slots=True)
class PriorityEnchantment:
    level: int
    type: ClassVar[EnchantmentType] = EnchantmentType.PRIORITY

    def apply(self, current: EnchantmentSet) -> EnchantmentSet:
        return replace(current, priority=self.level)


@dataclass(frozen=True, slots=True)
class AuraEnchantment:
    aura: Aura
    type: ClassVar[EnchantmentType] = EnchantmentType.AURA

    def apply(self, current: EnchantmentSet) -> EnchantmentSet:
        return replace(current, aura=self.aura)


@dataclass(frozen=True, slots=True)
class LinkedWishEnchantment:
    linked_wish_id: str
    type: ClassVar[EnchantmentType] = EnchantmentType.LINKED_WISH

    def apply(self, current: EnchantmentSet) -> EnchantmentSet:
        return replace(current, linked_wish_id=self.linked_wish_id)


@dataclass(frozen=True, slots=True)
class RecurringEnchantment:
    interval: Recurrence
    type: ClassVar[EnchantmentType] = EnchantmentType.RECURRING

    def apply(self, current: EnchantmentSet) -> EnchantmentSet:
        return replace(current, recurrence=self.interval)


Enchantment = Union[
    PriorityEnchantment, AuraEnchantment, LinkedWishEnchantment, RecurringEnchantment
]


def _enchantment_type(value: Any) -> EnchantmentType:
    try:
        return EnchantmentType(value)
    except ValueError as exc:
        raise UnknownEnchantmentType(f"Unknown enchantment type '{value}'") from exc


def build_enchantment(
    enchantment_type: EnchantmentType | str,
    *,
    level: int | None = None,
    value: str | None = None,
) -> Enchantment:
    """Turn a loose request into one of the enchantment variants."""
    kind = _enchantment_type(enchantment_type)
    if kind is EnchantmentType.PRIORITY:
        if isinstance(level, bool) or not isinstance(level, int):
            raise InvalidLevel(f"Priority level must be an integer, got {level!r}")
        return PriorityEnchantment(level)
    if kind is EnchantmentType.AURA:
        try:
            return AuraEnchantment(Aura(value))
        except ValueError as exc:
            allowed = ", ".join(aura.value for aura in Aura)
            raise InvalidValue(f"Invalid aura '{value}'. Must be one of: {allowed}") from exc
    if kind is EnchantmentType.LINKED_WISH:
        if not value:
            raise InvalidValue("Linked wish enchantment requires a wish id")
        return LinkedWishEnchantment(str(value))
    try:
        return RecurringEnchantment(Recurrence(value or Recurrence.WEEKLY.value))
    except ValueError as exc:
        allowed = ", ".join(item.value for item in Recurrence)
        raise InvalidValue(f"Invalid recurrence '{value}'. Must be one of: {allowed}") from exc


class EnchantmentCostCalculator:
    """Price enchantments from the live settings table."""

    def __init__(self, settings: EconomySettings) -> None:
        self._settings = settings

    def cost(self, enchantment_type: EnchantmentType | str, level: int | None = None) -> int:
        key = str(getattr(enchantment_type, "value", enchantment_type))
        try:
            base = int(self._settings.enchantment_costs[key])
        except KeyError as exc:
            raise UnknownEnchantmentType(f"Unknown enchantment type '{key}'") from exc
        if key != EnchantmentType.PRIORITY.value:
            return max(0, base)
        multipliers = self._settings.priority_cost_multiplier
        if level not in multipliers:
            levels = ", ".join(str(item) for item in sorted(multipliers))
            raise InvalidLevel(f"Invalid priority level {level!r}. Must be one of: {levels}")
        return max(0, base * int(multipliers[level]))

    def price(self, enchantment: Enchantment) -> int:
        if isinstance(enchantment, PriorityEnchantment):
            return self.cost(EnchantmentType.PRIORITY, enchantment.level)
        return self.cost(enchantment.type)
