"""Loaders for declarative configuration (JSON)."""

from .json_loader import (
    apply_settings_file,
    load_event_pool,
    load_rank_table,
    load_settings_overrides,
    parse_event_pool,
    parse_rank_table,
    parse_settings_dict,
    validate_event_pool_dict,
    validate_file,
    validate_rank_table_dict,
    validate_settings_dict,
)

__all__ = [
    "apply_settings_file",
    "load_event_pool",
    "load_rank_table",
    "load_settings_overrides",
    "parse_event_pool",
    "parse_rank_table",
    "parse_settings_dict",
    "validate_event_pool_dict",
    "validate_file",
    "validate_rank_table_dict",
    "validate_settings_dict",
]
