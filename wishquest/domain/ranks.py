"""Rank tiers, privileges and experience progression."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence


@dataclass(frozen=True, slots=True)
class Rank:
    name: str
    min_experience: int
    daily_quota_bonus: int = 0
    weekly_quota_bonus: int = 0
    monthly_quota_bonus: int = 0
    special_privileges: Mapping[str, Any] = field(default_factory=dict)
    emoji: str = ""


@dataclass(frozen=True, slots=True)
class Promotion:
    promoted: bool
    old_rank: Rank
    new_rank: Rank


@dataclass(frozen=True, slots=True)
class RankProgress:
    current_rank: Rank
    next_rank: Rank | None
    progress_percent: float
    experience_to_next: int


# name, threshold, daily/weekly/monthly bonus, emoji, privileges gained at this tier
_RANK_TABLE: Sequence[tuple[str, int, int, int, int, str, Mapping[str, Any]]] = (
    ("Private", 0, 0, 0, 0, "🪖", {"can_create_easy_quests": True}),
    ("Corporal", 100, 1, 2, 5, "🎖️", {"can_create_medium_quests": True, "bonus_experience": 0.05}),
    (
        "Junior Sergeant", 300, 2, 5, 10, "🏅",
        {"can_create_hard_quests": True, "bonus_experience": 0.1, "can_approve_easy_shared_wishes": True},
    ),
    (
        "Sergeant", 600, 3, 8, 15, "🎗️",
        {"can_create_epic_quests": True, "bonus_experience": 0.15, "can_approve_medium_shared_wishes": True},
    ),
    (
        "Senior Sergeant", 1000, 4, 12, 20, "🏆",
        {"can_approve_shared_wishes": True, "bonus_experience": 0.2, "can_modify_quest_rewards": True},
    ),
    (
        "Sergeant Major", 1500, 5, 15, 25, "👑",
        {"can_modify_economy": True, "bonus_experience": 0.25, "can_create_special_quests": True},
    ),
    (
        "Warrant Officer", 2200, 6, 20, 35, "⭐",
        {"can_create_special_events": True, "bonus_experience": 0.3, "extended_quest_duration": True},
    ),
    (
        "Senior Warrant Officer", 3000, 8, 25, 45, "🌟",
        {"unlimited_daily_gifts": True, "bonus_experience": 0.35, "can_mentor_lower_ranks": True},
    ),
    (
        "Junior Lieutenant", 4000, 10, 30, 60, "💫",
        {"can_grant_bonuses": True, "bonus_experience": 0.4, "can_create_rank_quests": True},
    ),
    ("Lieutenant", 5500, 12, 40, 80, "✨", {"bonus_experience": 0.5, "can_override_quotas": True}),
    (
        "Senior Lieutenant", 7500, 15, 50, 100, "🌠",
        {"advanced_quest_creation": True, "bonus_experience": 0.6, "can_create_epic_events": True},
    ),
    (
        "Captain", 10000, 18, 60, 120, "⚡",
        {"company_command": True, "bonus_experience": 0.7, "can_modify_rank_requirements": True},
    ),
    (
        "Major", 13000, 20, 70, 140, "🔥",
        {"battalion_privileges": True, "bonus_experience": 0.8, "can_create_legendary_quests": True},
    ),
    (
        "Lieutenant Colonel", 17000, 25, 80, 160, "⚔️",
        {"deputy_command": True, "bonus_experience": 0.9, "unlimited_quest_creation": True},
    ),
    (
        "Colonel", 22000, 30, 100, 200, "🛡️",
        {"regiment_command": True, "bonus_experience": 1.0, "can_grant_special_privileges": True},
    ),
    (
        "Major General", 30000, 40, 120, 250, "🎖️",
        {"general_privileges": True, "bonus_experience": 1.2, "can_modify_system_settings": True},
    ),
    (
        "Lieutenant General", 40000, 50, 150, 300, "🏅",
        {"senior_general_privileges": True, "bonus_experience": 1.5, "unlimited_system_access": True},
    ),
    (
        "Colonel General", 55000, 60, 180, 350, "🎗️",
        {"high_command": True, "bonus_experience": 2.0, "can_create_system_events": True},
    ),
    (
        "General of the Army", 75000, 80, 200, 400, "🏆",
        {"army_command": True, "bonus_experience": 2.5, "ultimate_privileges": True},
    ),
    ("Marshal", 100000, 100, 250, 500, "👑", {"marshal_privileges": True, "bonus_experience": 3.0}),
)


def build_rank_table(
    rows: Iterable[tuple[str, int, int, int, int, str, Mapping[str, Any]]],
) -> tuple[Rank, ...]:
    """Build ranks whose privileges accumulate up the table."""
    ranks: list[Rank] = []
    inherited: dict[str, Any] = {}
    for name, threshold, daily, weekly, monthly, emoji, privileges in sorted(
        rows, key=lambda row: row[1]
    ):
        inherited = {**inherited, **privileges}
        ranks.append(
            Rank(
                name=name,
                min_experience=threshold,
                daily_quota_bonus=daily,
                weekly_quota_bonus=weekly,
                monthly_quota_bonus=monthly,
                special_privileges=MappingProxyType(dict(inherited)),
                emoji=emoji,
            )
        )
    return tuple(ranks)


DEFAULT_RANKS: tuple[Rank, ...] = build_rank_table(_RANK_TABLE)


class RankCalculator:
    """Map experience to rank tiers and read their privileges."""

    def __init__(self, ranks: Sequence[Rank] = DEFAULT_RANKS) -> None:
        if not ranks:
            raise ValueError("Rank table must contain at least one rank")
        ordered = sorted(ranks, key=lambda rank: rank.min_experience)
        thresholds = [rank.min_experience for rank in ordered]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("Rank thresholds must be unique")
        if ordered[0].min_experience > 0:
            raise ValueError("Lowest rank must start at 0 experience")
        self._ranks: tuple[Rank, ...] = tuple(ordered)
        self._by_name = {rank.name: rank for rank in self._ranks}

    def all(self) -> tuple[Rank, ...]:
        return self._ranks

    def get(self, name: str) -> Rank:
        try:
            return self._by_name[name]
        except KeyError as exc:
            raise KeyError(f"Rank {name} not found") from exc

    def current_rank(self, experience: int) -> Rank:
        current = self._ranks[0]
        for rank in self._ranks:
            if experience >= rank.min_experience:
                current = rank
            else:
                break
        return current

    def promote(self, old_experience: int, new_experience: int) -> Promotion:
        old_rank = self.current_rank(old_experience)
        new_rank = self.current_rank(new_experience)
        return Promotion(promoted=old_rank.name != new_rank.name, old_rank=old_rank, new_rank=new_rank)

    def progress(self, experience: int) -> RankProgress:
        current = self.current_rank(experience)
        index = self._ranks.index(current)
        if index == len(self._ranks) - 1:
            return RankProgress(current, None, 100.0, 0)
        following = self._ranks[index + 1]
        span = following.min_experience - current.min_experience
        percent = min(100.0, (experience - current.min_experience) / span * 100)
        return RankProgress(
            current_rank=current,
            next_rank=following,
            progress_percent=round(percent, 2),
            experience_to_next=max(0, following.min_experience - experience),
        )

    def experience_multiplier(self, rank: Rank) -> float:
        return 1 + float(rank.special_privileges.get("bonus_experience", 0) or 0)

    def has_privilege(self, rank: Rank, key: str) -> bool:
        return bool(rank.special_privileges.get(key, False))

    def privilege_value(self, rank: Rank, key: str, default: Any = None) -> Any:
        return rank.special_privileges.get(key, default)

    def can_create_difficulty(self, rank: Rank, difficulty: str) -> bool:
        return self.has_privilege(rank, f"can_create_{difficulty}_quests")
