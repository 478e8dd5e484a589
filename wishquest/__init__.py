"""wishquest engine public API."""

from .app import EngineApp
from .config import SchedulerConfig, StorageConfig, TelegramConfig, WishQuestConfig

__all__ = [
    "EngineApp",
    "SchedulerConfig",
    "StorageConfig",
    "TelegramConfig",
    "WishQuestConfig",
]
