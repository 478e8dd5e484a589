"""Load rank tables, event pools and economy settings from JSON definitions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..domain.random_events import EventTemplate
from ..domain.ranks import Rank, build_rank_table
from ..domain.settings import EconomySettings
from ..validators import validate_event_pool, validate_rank_table, validate_settings

if TYPE_CHECKING:
    from ..app import EngineApp


def _read(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


# -- ranks -------------------------------------------------------------------


def load_rank_table(path: str | Path) -> tuple[Rank, ...]:
    """Load a rank table; privileges accumulate from lower to higher tiers."""
    return parse_rank_table(_read(path))


def parse_rank_table(data: dict[str, Any]) -> tuple[Rank, ...]:
    errors = validate_rank_table_dict(data)
    if errors:
        raise ValueError(_format_errors("Rank table validation failed", errors))
    ranks = build_rank_table(
        (
            entry["name"],
            int(entry["minExperience"]),
            int(entry.get("dailyQuotaBonus", 0)),
            int(entry.get("weeklyQuotaBonus", 0)),
            int(entry.get("monthlyQuotaBonus", 0)),
            str(entry.get("emoji", "")),
            dict(entry.get("privileges", {})),
        )
        for entry in data["ranks"]
    )
    errors = validate_rank_table(ranks)
    if errors:
        raise ValueError(_format_errors("Rank table validation failed", errors))
    return ranks


def validate_rank_table_dict(data: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    ranks_raw = data.get("ranks") if isinstance(data, dict) else None
    if not isinstance(ranks_raw, list) or not ranks_raw:
        return ["Rank table must contain non-empty 'ranks' array."]

    names: set[str] = set()
    for idx, entry in enumerate(ranks_raw, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Rank #{idx} must be an object.")
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Rank #{idx} must define non-empty 'name'.")
            continue
        if name in names:
            errors.append(f"Rank '{name}' defined multiple times.")
        names.add(name)

        threshold = entry.get("minExperience")
        if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 0:
            errors.append(f"Rank '{name}' must define non-negative integer 'minExperience'.")
        for key in ("dailyQuotaBonus", "weeklyQuotaBonus", "monthlyQuotaBonus"):
            value = entry.get(key, 0)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                errors.append(f"Rank '{name}' has invalid '{key}' value '{value}'.")
        privileges = entry.get("privileges", {})
        if not isinstance(privileges, dict):
            errors.append(f"Rank '{name}' privileges must be an object.")
    return errors


# -- events ------------------------------------------------------------------


def load_event_pool(path: str | Path) -> tuple[EventTemplate, ...]:
    return parse_event_pool(_read(path))


def parse_event_pool(data: dict[str, Any]) -> tuple[EventTemplate, ...]:
    errors = validate_event_pool_dict(data)
    if errors:
        raise ValueError(_format_errors("Event pool validation failed", errors))
    pool = tuple(
        EventTemplate(
            title=entry["title"].strip(),
            description=entry["description"].strip(),
            category=entry.get("category", "general"),
            base_reward=int(entry["baseReward"]),
            base_experience=int(entry.get("baseExperience", 0)),
        )
        for entry in data["events"]
    )
    errors = validate_event_pool(pool)
    if errors:
        raise ValueError(_format_errors("Event pool validation failed", errors))
    return pool


def validate_event_pool_dict(data: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    events_raw = data.get("events") if isinstance(data, dict) else None
    if not isinstance(events_raw, list) or not events_raw:
        return ["Event pool must contain non-empty 'events' array."]

    for idx, entry in enumerate(events_raw, start=1):
        if not isinstance(entry, dict):
            errors.append(f"Event #{idx} must be an object.")
            continue
        for field_name in ("title", "description"):
            value = entry.get(field_name)
            if not isinstance(value, str) or not value.strip():
                errors.append(f"Event #{idx} must define non-empty '{field_name}'.")
        reward = entry.get("baseReward")
        if not isinstance(reward, int) or isinstance(reward, bool) or reward < 0:
            errors.append(f"Event #{idx} 'baseReward' must be non-negative integer.")
        experience = entry.get("baseExperience", 0)
        if not isinstance(experience, int) or isinstance(experience, bool) or experience < 0:
            errors.append(f"Event #{idx} 'baseExperience' must be non-negative integer.")
        category = entry.get("category", "general")
        if not isinstance(category, str) or not category.strip():
            errors.append(f"Event #{idx} 'category' must be a non-empty string.")
    return errors


# -- settings ----------------------------------------------------------------


def load_settings_overrides(path: str | Path) -> dict[str, Any]:
    return parse_settings_dict(_read(path))


def parse_settings_dict(data: dict[str, Any]) -> dict[str, Any]:
    errors = validate_settings_dict(data)
    if errors:
        raise ValueError(_format_errors("Economy settings validation failed", errors))
    return dict(data["settings"])


def validate_settings_dict(data: dict[str, Any]) -> list[str]:
    overrides = data.get("settings") if isinstance(data, dict) else None
    if not isinstance(overrides, dict):
        return ["Settings file must contain a 'settings' object."]

    errors = [
        f"Unknown economy setting '{key}'."
        for key in overrides
        if key not in EconomySettings.keys()
    ]
    if errors:
        return errors
    try:
        settings = EconomySettings.from_mapping(overrides)
    except (TypeError, ValueError, KeyError) as exc:
        return [f"Economy settings contain an invalid value: {exc}"]
    return validate_settings(settings)


async def apply_settings_file(app: "EngineApp", path: str | Path) -> dict[str, Any]:
    """Write every override from ``path`` through the admin update path."""
    overrides = load_settings_overrides(path)
    for key, value in overrides.items():
        await app.settings.update(key, value, f"loaded from {Path(path).name}")
    return overrides


def _format_errors(prefix: str, errors: Iterable[str]) -> str:
    formatted = "\n".join(f"- {err}" for err in errors)
    return f"{prefix}:\n{formatted}"


def validate_file(kind: str, path: str | Path) -> list[str]:
    """Validate a JSON definition file of the given kind."""
    validators: Mapping[str, Any] = {
        "ranks": validate_rank_table_dict,
        "events": validate_event_pool_dict,
        "settings": validate_settings_dict,
    }
    if kind not in validators:
        raise ValueError(f"Unknown definition kind '{kind}'")
    try:
        data = _read(path)
    except (OSError, json.JSONDecodeError) as exc:
        return [f"Cannot read {kind} file '{path}': {exc}"]
    return validators[kind](data)
