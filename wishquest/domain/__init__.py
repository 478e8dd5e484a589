"""Domain models, engines and services."""

from .exceptions import (
    AlreadyActive,
    EventExpired,
    InsufficientMana,
    InvalidAmount,
    InvalidLevel,
    InvalidState,
    InvalidValue,
    NotFound,
    PermissionDenied,
    QuotaExceeded,
    RecipientNotFound,
    SelfCompletion,
    SelfGift,
    StorageError,
    UnknownEnchantmentType,
    ValidationError,
    WishQuestError,
)
from .settings import EconomySettings, SettingsService
from .ranks import DEFAULT_RANKS, Promotion, Rank, RankCalculator, RankProgress
from .ledger import Direction, Ledger, PayoutStatus, TransactionCategory
from .quotas import QuotaPeriod, QuotaStatus, QuotaTracker, QuotaWindow
from .enchantments import (
    Aura,
    EnchantmentCostCalculator,
    EnchantmentSet,
    EnchantmentType,
    Recurrence,
    build_enchantment,
)
from .notifications import Notification, NotificationBus, NotificationType
from .economy import EconomyEngine, EconomyMetrics, EnchantRequest, GiftRequest
from .users import UserProfile, UserService
from .wishes import WishDraft, WishService
from .quests import Difficulty, QuestDraft, QuestEngine, QuestStatus, QuestUpdate
from .random_events import DEFAULT_EVENT_POOL, EventGenerator, EventStatus, EventTemplate
from .maintenance import MAINTENANCE_TASKS, MaintenanceReport, MaintenanceService

__all__ = [
    "AlreadyActive",
    "EventExpired",
    "InsufficientMana",
    "InvalidAmount",
    "InvalidLevel",
    "InvalidState",
    "InvalidValue",
    "NotFound",
    "PermissionDenied",
    "QuotaExceeded",
    "RecipientNotFound",
    "SelfCompletion",
    "SelfGift",
    "StorageError",
    "UnknownEnchantmentType",
    "ValidationError",
    "WishQuestError",
    "EconomySettings",
    "SettingsService",
    "DEFAULT_RANKS",
    "Promotion",
    "Rank",
    "RankCalculator",
    "RankProgress",
    "Direction",
    "Ledger",
    "PayoutStatus",
    "TransactionCategory",
    "QuotaPeriod",
    "QuotaStatus",
    "QuotaTracker",
    "QuotaWindow",
    "Aura",
    "EnchantmentCostCalculator",
    "EnchantmentSet",
    "EnchantmentType",
    "Recurrence",
    "build_enchantment",
    "Notification",
    "NotificationBus",
    "NotificationType",
    "EconomyEngine",
    "EconomyMetrics",
    "EnchantRequest",
    "GiftRequest",
    "UserProfile",
    "UserService",
    "WishDraft",
    "WishService",
    "Difficulty",
    "QuestDraft",
    "QuestEngine",
    "QuestStatus",
    "QuestUpdate",
    "DEFAULT_EVENT_POOL",
    "EventGenerator",
    "EventStatus",
    "EventTemplate",
    "MAINTENANCE_TASKS",
    "MaintenanceReport",
    "MaintenanceService",
]
