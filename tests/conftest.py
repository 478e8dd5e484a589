from datetime import datetime, timedelta, timezone
from random import Random

import pytest

from wishquest import EngineApp, WishQuestConfig
from wishquest.testing import CoupleClient

pytest_plugins = ["wishquest.testing.fixtures"]

# Wednesday
NOW = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture()
def app(clock) -> EngineApp:
    return EngineApp(WishQuestConfig(), rng=Random(7), clock=clock)


@pytest.fixture()
def client(app) -> CoupleClient:
    return CoupleClient(app)
