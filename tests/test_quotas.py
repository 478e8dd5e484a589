from datetime import datetime, timedelta, timezone

import pytest

from wishquest.domain.exceptions import InvalidAmount, QuotaExceeded
from wishquest.domain.quotas import QuotaTracker
from wishquest.domain.ranks import RankCalculator
from wishquest.domain.settings import EconomySettings
from wishquest.storage import UserRecord

NOW = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)


def _tracker() -> QuotaTracker:
    return QuotaTracker(RankCalculator(), clock=lambda: NOW)


def test_limits_include_rank_bonus():
    tracker = _tracker()
    settings = EconomySettings()
    private = tracker.check(UserRecord(user_id="a"), settings, NOW)
    corporal = tracker.check(UserRecord(user_id="b", experience_points=150), settings, NOW)
    assert (private.daily.limit, private.weekly.limit, private.monthly.limit) == (5, 20, 50)
    assert (corporal.daily.limit, corporal.weekly.limit, corporal.monthly.limit) == (6, 22, 55)


def test_reset_times_follow_calendar_boundaries():
    status = _tracker().check(UserRecord(user_id="a"), EconomySettings(), NOW)
    assert status.daily.reset_time == datetime(2024, 3, 14, tzinfo=timezone.utc)
    assert status.weekly.reset_time == datetime(2024, 3, 18, tzinfo=timezone.utc)
    assert status.monthly.reset_time == datetime(2024, 4, 1, tzinfo=timezone.utc)


def test_validate_gift_blocks_overdraw_and_keeps_counters():
    tracker = _tracker()
    user = UserRecord(user_id="a", daily_quota_used=4, weekly_quota_used=4, monthly_quota_used=4)
    with pytest.raises(QuotaExceeded) as exc_info:
        tracker.validate_gift(user, 2, EconomySettings(), NOW)
    assert exc_info.value.windows == ("daily",)
    assert exc_info.value.remaining == 1
    assert user.daily_quota_used == 4


def test_validate_gift_rejects_non_positive_amount():
    with pytest.raises(InvalidAmount):
        _tracker().validate_gift(UserRecord(user_id="a"), 0, EconomySettings(), NOW)


def test_reset_same_day_is_noop():
    user = UserRecord(user_id="a", daily_quota_used=3, last_quota_reset=NOW - timedelta(hours=2))
    assert _tracker().reset_if_needed(user, NOW) is False
    assert user.daily_quota_used == 3


def test_reset_next_day_keeps_week_and_month():
    user = UserRecord(
        user_id="a",
        daily_quota_used=3,
        weekly_quota_used=7,
        monthly_quota_used=9,
        last_quota_reset=NOW,
    )
    assert _tracker().reset_if_needed(user, NOW + timedelta(days=1))
    assert (user.daily_quota_used, user.weekly_quota_used, user.monthly_quota_used) == (0, 7, 9)


def test_reset_across_week_and_month_boundaries():
    last = datetime(2024, 3, 31, 20, 0, tzinfo=timezone.utc)  # Sunday
    user = UserRecord(
        user_id="a",
        daily_quota_used=1,
        weekly_quota_used=2,
        monthly_quota_used=3,
        last_quota_reset=last,
    )
    assert _tracker().reset_if_needed(user, datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc))
    assert (user.daily_quota_used, user.weekly_quota_used, user.monthly_quota_used) == (0, 0, 0)


def test_first_reset_initialises_counters():
    user = UserRecord(user_id="a", daily_quota_used=2)
    assert _tracker().reset_if_needed(user, NOW)
    assert user.daily_quota_used == 0
    assert user.last_quota_reset == NOW


def test_deduct_updates_all_windows():
    user = UserRecord(user_id="a")
    _tracker().deduct(user, 2)
    assert (user.daily_quota_used, user.weekly_quota_used, user.monthly_quota_used) == (2, 2, 2)
