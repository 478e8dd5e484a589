"""Pytest fixtures for wishquest."""

from __future__ import annotations

from datetime import datetime
from random import Random

import pytest

from ..app import EngineApp
from ..config import StorageConfig, WishQuestConfig


@pytest.fixture()
def memory_app() -> EngineApp:
    config = WishQuestConfig(storage=StorageConfig(backend="memory"), rng_seed=7)
    return EngineApp(config)


def app_fixture(*, now: datetime | None = None, seed: int = 7, **kwargs) -> EngineApp:
    """Helper for ad-hoc tests; ``now`` freezes the engine clock."""
    config = WishQuestConfig(**kwargs)
    if now is None:
        return EngineApp(config, rng=Random(seed))
    return EngineApp(config, rng=Random(seed), clock=lambda: now)
