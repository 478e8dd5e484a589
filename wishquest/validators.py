"""Validation utilities for wishquest applications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence

from .domain.enchantments import EnchantmentType
from .domain.quests import Difficulty
from .domain.random_events import EventTemplate
from .domain.ranks import Rank
from .domain.settings import EconomySettings

if TYPE_CHECKING:
    from .app import EngineApp


def validate_settings(settings: EconomySettings) -> list[str]:
    """Return list of problems found in an economy settings snapshot."""
    errors: list[str] = []

    for key in ("daily_gift_base_limit", "weekly_gift_base_limit", "monthly_gift_base_limit"):
        if getattr(settings, key) < 0:
            errors.append(f"Setting '{key}' cannot be negative.")
    if settings.daily_gift_base_limit > settings.weekly_gift_base_limit:
        errors.append("Daily gift limit cannot exceed the weekly limit.")
    if settings.weekly_gift_base_limit > settings.monthly_gift_base_limit:
        errors.append("Weekly gift limit cannot exceed the monthly limit.")

    for kind in EnchantmentType:
        cost = settings.enchantment_costs.get(kind.value)
        if cost is None:
            errors.append(f"Enchantment cost for '{kind.value}' is not configured.")
        elif cost < 0:
            errors.append(f"Enchantment cost for '{kind.value}' cannot be negative.")

    multipliers = settings.priority_cost_multiplier
    if not multipliers:
        errors.append("Priority cost multipliers must define at least one level.")
    for level, multiplier in multipliers.items():
        if level < 1:
            errors.append(f"Priority level '{level}' must be at least 1.")
        if multiplier < 0:
            errors.append(f"Priority multiplier for level '{level}' cannot be negative.")
    ordered = [multipliers[level] for level in sorted(multipliers)]
    if any(later < earlier for earlier, later in zip(ordered, ordered[1:])):
        errors.append("Priority multipliers must not decrease with level.")

    for difficulty in Difficulty:
        table = settings.quest_rewards.get(difficulty.value)
        if table is None:
            errors.append(f"Quest rewards for '{difficulty.value}' are not configured.")
            continue
        for field_name in ("mana", "experience"):
            if table.get(field_name, -1) < 0:
                errors.append(
                    f"Quest reward '{field_name}' for '{difficulty.value}' must be non-negative."
                )

    for action, points in settings.experience_per_action.items():
        if points < 0:
            errors.append(f"Experience for action '{action}' cannot be negative.")
    for category, multiplier in settings.category_experience_multiplier.items():
        if multiplier <= 0:
            errors.append(f"Experience multiplier for category '{category}' must be positive.")

    if settings.max_active_quests_per_user <= 0:
        errors.append("Setting 'max_active_quests_per_user' must be positive.")
    if settings.max_active_events_per_user <= 0:
        errors.append("Setting 'max_active_events_per_user' must be positive.")
    if settings.event_expiration_hours <= 0:
        errors.append("Setting 'event_expiration_hours' must be positive.")

    for key in ("event_generation_interval_hours", "event_reward_variance"):
        low, high = getattr(settings, key)
        if low < 0 or high < low:
            errors.append(f"Setting '{key}' must be a non-negative (low, high) range.")

    if settings.min_quest_description_length > settings.max_quest_description_length:
        errors.append("Quest description length bounds are inverted.")
    if settings.min_wish_description_length > settings.max_wish_description_length:
        errors.append("Wish description length bounds are inverted.")
    if settings.quest_min_due_days < 0 or settings.quest_max_due_days < settings.quest_min_due_days:
        errors.append("Quest due date window is invalid.")

    return errors


def validate_rank_table(ranks: Sequence[Rank]) -> list[str]:
    errors: list[str] = []
    if not ranks:
        return ["Rank table is empty."]

    names: set[str] = set()
    thresholds: set[int] = set()
    for rank in ranks:
        if rank.name in names:
            errors.append(f"Rank '{rank.name}' is defined more than once.")
        names.add(rank.name)
        if rank.min_experience in thresholds:
            errors.append(f"Rank '{rank.name}' shares threshold {rank.min_experience} with another rank.")
        thresholds.add(rank.min_experience)
        if rank.min_experience < 0:
            errors.append(f"Rank '{rank.name}' has negative min_experience.")
        for label in ("daily_quota_bonus", "weekly_quota_bonus", "monthly_quota_bonus"):
            if getattr(rank, label) < 0:
                errors.append(f"Rank '{rank.name}' has negative {label}.")
        bonus = rank.special_privileges.get("bonus_experience", 0)
        if not isinstance(bonus, (int, float)) or isinstance(bonus, bool) or bonus < 0:
            errors.append(f"Rank '{rank.name}' has invalid bonus_experience '{bonus}'.")

    if min(thresholds) != 0:
        errors.append("The lowest rank must start at 0 experience.")
    return errors


def validate_event_pool(pool: Iterable[EventTemplate]) -> list[str]:
    errors: list[str] = []
    templates = list(pool)
    if not templates:
        return ["Event pool is empty."]
    for index, template in enumerate(templates):
        label = template.title or f"#{index}"
        if not template.title.strip():
            errors.append(f"Event template #{index} has an empty title.")
        if not template.description.strip():
            errors.append(f"Event template '{label}' has an empty description.")
        if template.base_reward < 0:
            errors.append(f"Event template '{label}' has negative base reward.")
        if template.base_experience < 0:
            errors.append(f"Event template '{label}' has negative base experience.")
    return errors


async def validate_app(app: "EngineApp") -> list[str]:
    """Return list of validation errors discovered in configured app."""
    errors: list[str] = []
    errors.extend(validate_settings(await app.settings.current()))
    errors.extend(validate_rank_table(app.ranks.all()))
    errors.extend(validate_event_pool(app.events.pool))

    for difficulty in Difficulty:
        key = f"can_create_{difficulty.value}_quests"
        if not any(rank.special_privileges.get(key) for rank in app.ranks.all()):
            errors.append(f"No rank grants '{key}'; {difficulty.value} quests can never be created.")

    scheduler = app.config.scheduler
    for name, interval in scheduler.intervals().items():
        if interval <= 0:
            errors.append(f"Scheduler interval for '{name}' must be positive.")
    if scheduler.batch_size <= 0:
        errors.append("Scheduler 'batch_size' must be positive.")
    if app.config.metrics_window <= 0:
        errors.append("Configuration 'metrics_window' must be positive.")
    if app.config.telegram.enabled and not app.config.telegram.bot_token:
        errors.append("Telegram delivery is enabled but no bot token is configured.")
    return errors


__all__ = ["validate_app", "validate_event_pool", "validate_rank_table", "validate_settings"]
