"""Rolling daily/weekly/monthly gift quotas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from enum import Enum

from .clock import Clock, as_utc, utcnow
from .exceptions import InvalidAmount, QuotaExceeded
from .ranks import RankCalculator
from .settings import EconomySettings
from ..storage.base import UserRecord


class QuotaPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True, slots=True)
class QuotaWindow:
    limit: int
    used: int
    reset_time: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def utilization(self) -> float:
        return (self.used / self.limit) * 100 if self.limit > 0 else 0.0


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    daily: QuotaWindow
    weekly: QuotaWindow
    monthly: QuotaWindow

    def windows(self) -> dict[QuotaPeriod, QuotaWindow]:
        return {
            QuotaPeriod.DAILY: self.daily,
            QuotaPeriod.WEEKLY: self.weekly,
            QuotaPeriod.MONTHLY: self.monthly,
        }

    @property
    def remaining(self) -> int:
        return min(window.remaining for window in self.windows().values())


class QuotaTracker:
    """Compute limits and keep the used-counters of a ``UserRecord`` current.

    Calendar boundaries are evaluated in ``tz``. The tracker only mutates the
    record it is handed; persisting it is the caller's unit of work.
    """

    def __init__(
        self,
        ranks: RankCalculator,
        *,
        tz: tzinfo = timezone.utc,
        clock: Clock = utcnow,
    ) -> None:
        self._ranks = ranks
        self._tz = tz
        self._clock = clock

    def limits(self, user: UserRecord, settings: EconomySettings) -> dict[QuotaPeriod, int]:
        rank = self._ranks.current_rank(user.experience_points)
        return {
            QuotaPeriod.DAILY: settings.daily_gift_base_limit + rank.daily_quota_bonus,
            QuotaPeriod.WEEKLY: settings.weekly_gift_base_limit + rank.weekly_quota_bonus,
            QuotaPeriod.MONTHLY: settings.monthly_gift_base_limit + rank.monthly_quota_bonus,
        }

    def check(
        self, user: UserRecord, settings: EconomySettings, now: datetime | None = None
    ) -> QuotaStatus:
        local_now = as_utc(now or self._clock()).astimezone(self._tz)
        limits = self.limits(user, settings)
        midnight = datetime.combine(local_now.date(), time.min, tzinfo=self._tz)
        daily_reset = midnight + timedelta(days=1)
        weekly_reset = midnight + timedelta(days=7 - local_now.weekday())
        if local_now.month == 12:
            monthly_reset = midnight.replace(year=local_now.year + 1, month=1, day=1)
        else:
            monthly_reset = midnight.replace(month=local_now.month + 1, day=1)
        return QuotaStatus(
            daily=QuotaWindow(limits[QuotaPeriod.DAILY], user.daily_quota_used, daily_reset),
            weekly=QuotaWindow(limits[QuotaPeriod.WEEKLY], user.weekly_quota_used, weekly_reset),
            monthly=QuotaWindow(limits[QuotaPeriod.MONTHLY], user.monthly_quota_used, monthly_reset),
        )

    def reset_if_needed(self, user: UserRecord, now: datetime | None = None) -> bool:
        """Zero the counters whose calendar window changed since the last reset."""
        now = as_utc(now or self._clock())
        local_now = now.astimezone(self._tz)
        if user.last_quota_reset is None:
            user.daily_quota_used = 0
            user.weekly_quota_used = 0
            user.monthly_quota_used = 0
            user.last_quota_reset = now
            return True

        last = as_utc(user.last_quota_reset).astimezone(self._tz)
        if last.date() == local_now.date():
            return False

        user.daily_quota_used = 0
        if tuple(last.isocalendar())[:2] != tuple(local_now.isocalendar())[:2]:
            user.weekly_quota_used = 0
        if (last.year, last.month) != (local_now.year, local_now.month):
            user.monthly_quota_used = 0
        user.last_quota_reset = now
        return True

    def validate_gift(
        self,
        user: UserRecord,
        amount: int,
        settings: EconomySettings,
        now: datetime | None = None,
    ) -> int:
        """Return the minimum remaining headroom or raise ``QuotaExceeded``."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(f"Gift quota cost must be a positive integer, got {amount!r}")
        status = self.check(user, settings, now)
        blocked = [
            period.value
            for period, window in status.windows().items()
            if window.used + amount > window.limit
        ]
        if blocked:
            raise QuotaExceeded(blocked, status.remaining)
        return status.remaining

    def deduct(self, user: UserRecord, amount: int) -> None:
        user.daily_quota_used += amount
        user.weekly_quota_used += amount
        user.monthly_quota_used += amount
