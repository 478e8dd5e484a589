"""Mana grants, quota-gated gifting and enchantment purchase."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping
from uuid import uuid4

from .clock import Clock, as_utc, utcnow
from .enchantments import (
    EnchantmentCostCalculator,
    EnchantmentSet,
    EnchantmentType,
    LinkedWishEnchantment,
    PriorityEnchantment,
    build_enchantment,
)
from .exceptions import (
    InvalidAmount,
    InvalidLevel,
    InvalidState,
    InvalidValue,
    NotFound,
    PermissionDenied,
    RecipientNotFound,
    SelfGift,
    ValidationError,
)
from .ledger import Direction, Ledger, TransactionCategory
from .notifications import NotificationBus, NotificationType, Outbox
from .quotas import QuotaStatus, QuotaTracker
from .ranks import Promotion, RankCalculator
from .settings import EconomySettings, SettingsService
from ..storage.base import Storage, TransactionRecord, UnitOfWork, UserRecord, WishRecord

logger = logging.getLogger(__name__)


async def require_user(uow: UnitOfWork, user_id: str) -> UserRecord:
    user = await uow.users.get(user_id)
    if user is None:
        raise NotFound("user", user_id)
    return user


@dataclass(slots=True)
class GiftRequest:
    recipient_id: str
    amount: int = 1
    message: str | None = None
    category: str = "general"


@dataclass(slots=True)
class GiftOutcome:
    wish: WishRecord
    transaction: TransactionRecord
    remaining_quota: int
    experience_gained: int


@dataclass(slots=True)
class EnchantRequest:
    wish_id: str
    enchantment_type: EnchantmentType | str
    level: int | None = None
    value: str | None = None


@dataclass(slots=True)
class EnchantOutcome:
    wish: WishRecord
    enchantments: EnchantmentSet
    cost: int
    balance: int
    transaction: TransactionRecord


@dataclass(slots=True)
class ExperienceAward:
    gained: int
    promotion: Promotion


@dataclass(slots=True)
class RewardResult:
    transaction: TransactionRecord
    experience: ExperienceAward


@dataclass(slots=True)
class EconomyMetrics:
    total_gifts_given: int
    total_gifts_received: int
    total_mana_spent: int
    total_mana_earned: int
    quota_utilization: Mapping[str, float] = field(default_factory=dict)
    most_used_enchantment: str | None = None
    gift_frequency: int = 0


class EconomyEngine:
    """Every public operation runs as one unit of work on ``storage``.

    The ``*_in`` style helpers (``grant_mana_in``, ``award_experience``,
    ``apply_reward``) operate inside a unit the caller already holds so the
    quest and event engines can compose them with their own transitions.
    """

    def __init__(
        self,
        storage: Storage,
        settings: SettingsService,
        *,
        ranks: RankCalculator | None = None,
        quotas: QuotaTracker | None = None,
        ledger: Ledger | None = None,
        notifications: NotificationBus | None = None,
        clock: Clock = utcnow,
        metrics_window: int = 200,
    ) -> None:
        self._storage = storage
        self._settings = settings
        self._ranks = ranks or RankCalculator()
        self._quotas = quotas or QuotaTracker(self._ranks, clock=clock)
        self._ledger = ledger or Ledger(clock=clock)
        self._notifications = notifications
        self._clock = clock
        self._metrics_window = metrics_window

    @property
    def ranks(self) -> RankCalculator:
        return self._ranks

    @property
    def quotas(self) -> QuotaTracker:
        return self._quotas

    @property
    def notifications(self) -> NotificationBus | None:
        return self._notifications

    async def settings(self) -> EconomySettings:
        return await self._settings.current()

    # -- mana ---------------------------------------------------------------

    async def grant_mana(
        self,
        user_id: str,
        amount: int,
        reason: str,
        category: TransactionCategory | str = TransactionCategory.ADMIN_ADJUSTMENT,
        reference_id: str | None = None,
        reference_type: str | None = None,
    ) -> TransactionRecord:
        _check_amount(amount)
        async with self._storage.unit_of_work() as uow:
            user = await require_user(uow, user_id)
            entry = await self.grant_mana_in(
                uow, user, amount, reason, category, reference_id, reference_type
            )
            await uow.users.save(user)
        logger.info("Granted %s mana to %s (%s)", amount, user_id, entry.transaction_category)
        return entry

    async def grant_mana_in(
        self,
        uow: UnitOfWork,
        user: UserRecord,
        amount: int,
        reason: str,
        category: TransactionCategory | str,
        reference_id: str | None = None,
        reference_type: str | None = None,
        *,
        experience_gained: int = 0,
    ) -> TransactionRecord:
        _check_amount(amount)
        return await self._ledger.record(
            uow,
            user,
            direction=Direction.CREDIT,
            amount=amount,
            description=reason,
            category=category,
            related_entity_id=reference_id,
            related_entity_type=reference_type,
            experience_gained=experience_gained,
        )

    # -- experience ---------------------------------------------------------

    def award_experience(self, user: UserRecord, base: int) -> ExperienceAward:
        """Credit ``base`` scaled by the user's rank multiplier and update the rank."""
        old_experience = user.experience_points
        rank = self._ranks.current_rank(old_experience)
        gained = int(max(0, base) * self._ranks.experience_multiplier(rank))
        user.experience_points = old_experience + gained
        promotion = self._ranks.promote(old_experience, user.experience_points)
        user.rank = promotion.new_rank.name
        return ExperienceAward(gained=gained, promotion=promotion)

    async def apply_reward(
        self,
        uow: UnitOfWork,
        user: UserRecord,
        *,
        mana: int,
        experience: int,
        description: str,
        category: TransactionCategory | str,
        related_entity_id: str | None = None,
        related_entity_type: str | None = None,
        outbox: Outbox | None = None,
    ) -> RewardResult:
        award = self.award_experience(user, experience)
        entry = await self.grant_mana_in(
            uow,
            user,
            mana,
            description,
            category,
            related_entity_id,
            related_entity_type,
            experience_gained=award.gained,
        )
        await uow.users.save(user)
        if outbox is not None:
            self.announce_promotion(outbox, user, award.promotion)
        return RewardResult(transaction=entry, experience=award)

    def announce_promotion(self, outbox: Outbox, user: UserRecord, promotion: Promotion) -> None:
        if not promotion.promoted:
            return
        logger.info(
            "User %s promoted from %s to %s",
            user.user_id,
            promotion.old_rank.name,
            promotion.new_rank.name,
        )
        outbox.add(
            NotificationType.RANK_PROMOTED,
            user.user_id,
            {
                "old_rank": promotion.old_rank.name,
                "new_rank": promotion.new_rank.name,
                "emoji": promotion.new_rank.emoji,
            },
        )

    async def publish(self, outbox: Outbox) -> None:
        await outbox.deliver(self._notifications)

    # -- gifting ------------------------------------------------------------

    async def gift_wish(self, from_user_id: str, request: GiftRequest) -> GiftOutcome:
        """Send a gift wish; gifting consumes quota, never mana."""
        if request.recipient_id == from_user_id:
            raise SelfGift("You cannot gift a wish to yourself")
        if isinstance(request.amount, bool) or not isinstance(request.amount, int) or request.amount <= 0:
            raise InvalidAmount(f"Gift amount must be a positive integer, got {request.amount!r}")

        settings = await self.settings()
        message = (request.message or "").strip()
        if len(message) > settings.max_wish_description_length:
            raise ValidationError(
                f"Gift message must be at most {settings.max_wish_description_length} characters"
            )

        outbox = Outbox()
        now = self._clock()
        async with self._storage.unit_of_work() as uow:
            sender = await require_user(uow, from_user_id)
            recipient = await uow.users.get(request.recipient_id)
            if recipient is None:
                raise RecipientNotFound(request.recipient_id)

            self._quotas.reset_if_needed(sender, now)
            remaining = self._quotas.validate_gift(sender, request.amount, settings, now)
            self._quotas.deduct(sender, request.amount)

            wish = WishRecord(
                wish_id=uuid4().hex,
                description=message or f"A gift from {sender.name or sender.user_id}",
                author_id=sender.user_id,
                assignee_id=recipient.user_id,
                category=request.category,
                is_gift=True,
                created_at=now,
            )
            await uow.wishes.add(wish)

            award = self.award_experience(sender, settings.experience_for("gift_sent"))
            metadata = {"quota_cost": request.amount, "message": message or None}
            entry = await self._ledger.record(
                uow,
                sender,
                direction=Direction.DEBIT,
                amount=0,
                description=f"Gift sent to {recipient.name or recipient.user_id}",
                category=TransactionCategory.GIFT_SENT,
                related_entity_id=wish.wish_id,
                related_entity_type="wish",
                experience_gained=award.gained,
                metadata={**metadata, "recipient_id": recipient.user_id},
                timestamp=now,
            )
            await self._ledger.record(
                uow,
                recipient,
                direction=Direction.CREDIT,
                amount=0,
                description=f"Gift received from {sender.name or sender.user_id}",
                category=TransactionCategory.GIFT_RECEIVED,
                related_entity_id=wish.wish_id,
                related_entity_type="wish",
                metadata={**metadata, "sender_id": sender.user_id},
                timestamp=now,
            )
            await uow.users.save(sender)
            await uow.users.save(recipient)

            outbox.add(
                NotificationType.GIFT_RECEIVED,
                recipient.user_id,
                {
                    "sender_id": sender.user_id,
                    "sender_name": sender.name,
                    "wish_id": wish.wish_id,
                    "amount": request.amount,
                    "message": message or None,
                },
            )
            self.announce_promotion(outbox, sender, award.promotion)

        logger.info(
            "User %s gifted wish %s to %s (quota cost %s)",
            from_user_id,
            wish.wish_id,
            request.recipient_id,
            request.amount,
        )
        await self.publish(outbox)
        return GiftOutcome(
            wish=wish,
            transaction=entry,
            remaining_quota=remaining - request.amount,
            experience_gained=award.gained,
        )

    # -- enchantments -------------------------------------------------------

    async def enchant_wish(self, user_id: str, request: EnchantRequest) -> EnchantOutcome:
        settings = await self.settings()
        calculator = EnchantmentCostCalculator(settings)
        async with self._storage.unit_of_work() as uow:
            wish = await uow.wishes.get(request.wish_id)
            if wish is None:
                raise NotFound("wish", request.wish_id)
            if wish.author_id != user_id:
                raise PermissionDenied("Only the author can enchant a wish")
            if wish.status != "active":
                raise InvalidState(
                    f"Wish {wish.wish_id} is {wish.status} and can no longer be enchanted",
                    status=wish.status,
                )

            enchantment = build_enchantment(
                request.enchantment_type, level=request.level, value=request.value
            )
            if isinstance(enchantment, LinkedWishEnchantment):
                if enchantment.linked_wish_id == wish.wish_id:
                    raise InvalidValue("A wish cannot be linked to itself")
                if await uow.wishes.get(enchantment.linked_wish_id) is None:
                    raise NotFound("wish", enchantment.linked_wish_id)
            cost = calculator.price(enchantment)
            if isinstance(enchantment, PriorityEnchantment):
                current = EnchantmentSet.from_dict(wish.enchantments).priority
                if current >= max(settings.priority_cost_multiplier):
                    raise InvalidState(
                        f"Wish {wish.wish_id} already has the maximum priority {current}",
                        status=wish.status,
                    )
                if enchantment.level <= current:
                    raise InvalidLevel(
                        f"Priority level must be higher than the current level {current}"
                    )

            user = await require_user(uow, user_id)
            entry = await self._ledger.record(
                uow,
                user,
                direction=Direction.DEBIT,
                amount=cost,
                description=f"Enchantment applied: {enchantment.type.value}",
                category=TransactionCategory.ENCHANTMENT,
                related_entity_id=wish.wish_id,
                related_entity_type="wish",
                metadata={
                    "enchantment_type": enchantment.type.value,
                    "level": request.level,
                    "value": request.value,
                },
            )
            user.mana_spent += cost

            enchantments = enchantment.apply(EnchantmentSet.from_dict(wish.enchantments))
            wish.enchantments = enchantments.to_dict()
            await uow.wishes.save(wish)
            await uow.users.save(user)

        logger.info(
            "User %s enchanted wish %s with %s for %s mana",
            user_id,
            wish.wish_id,
            enchantment.type.value,
            cost,
        )
        return EnchantOutcome(
            wish=wish, enchantments=enchantments, cost=cost, balance=user.mana, transaction=entry
        )

    # -- quotas -------------------------------------------------------------

    async def check_quotas(self, user_id: str) -> QuotaStatus:
        """Report quota windows as they stand after any pending reset."""
        settings = await self.settings()
        now = self._clock()
        async with self._storage.unit_of_work() as uow:
            user = await require_user(uow, user_id)
        self._quotas.reset_if_needed(user, now)
        return self._quotas.check(user, settings, now)

    async def check_and_reset_quotas(self, user_id: str, now: datetime | None = None) -> bool:
        async with self._storage.unit_of_work() as uow:
            user = await require_user(uow, user_id)
            reset = self._quotas.reset_if_needed(user, now or self._clock())
            if reset:
                await uow.users.save(user)
        if reset:
            logger.debug("Quota counters reset for %s", user_id)
        return reset

    # -- metrics ------------------------------------------------------------

    async def calculate_economy_metrics(self, user_id: str) -> EconomyMetrics:
        settings = await self.settings()
        now = self._clock()
        async with self._storage.unit_of_work() as uow:
            user = await require_user(uow, user_id)
            entries = await uow.transactions.recent_for_user(user_id, self._metrics_window)

        self._quotas.reset_if_needed(user, now)
        status = self._quotas.check(user, settings, now)
        week_ago = now - timedelta(days=7)

        gifts_sent = [e for e in entries if e.transaction_category == TransactionCategory.GIFT_SENT.value]
        enchantment_counts: Counter[str] = Counter(
            _enchantment_kind(entry.metadata)
            for entry in entries
            if entry.transaction_category == TransactionCategory.ENCHANTMENT.value
        )
        enchantment_counts.pop("", None)
        most_used = enchantment_counts.most_common(1)

        return EconomyMetrics(
            total_gifts_given=len(gifts_sent),
            total_gifts_received=sum(
                1
                for entry in entries
                if entry.transaction_category == TransactionCategory.GIFT_RECEIVED.value
            ),
            total_mana_spent=user.mana_spent,
            total_mana_earned=sum(e.mana_amount for e in entries if e.type == Direction.CREDIT.value),
            quota_utilization={
                period.value: round(window.utilization, 2)
                for period, window in status.windows().items()
            },
            most_used_enchantment=most_used[0][0] if most_used else None,
            gift_frequency=sum(1 for e in gifts_sent if as_utc(e.created_at) >= week_ago),
        )


def _check_amount(amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmount(f"Mana amount must be a non-negative integer, got {amount!r}")


def _enchantment_kind(metadata: Mapping[str, Any]) -> str:
    return str(metadata.get("enchantment_type") or "")
