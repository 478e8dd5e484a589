"""Testing utilities for wishquest."""

from .factory import QuestDraftFactory, UserFactory, WishDraftFactory
from .fixtures import app_fixture, memory_app
from .test_client import CoupleClient

__all__ = [
    "CoupleClient",
    "QuestDraftFactory",
    "UserFactory",
    "WishDraftFactory",
    "app_fixture",
    "memory_app",
]
