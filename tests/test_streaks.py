"""Tests for streak rebuild, reset checks, thresholds and analytics."""

from datetime import UTC, datetime, timedelta

import pytest

from pageturn.errors import ValidationError
from pageturn.services.clock import OperationContext
from pageturn.services.streaks import validate_threshold

from tests.conftest import TODAY, TZ


def day(offset):
    return TODAY - timedelta(days=offset)


async def _log(services, ctx, book, entries):
    """Start reading ``book`` and log (days_ago, page) entries in order."""
    s = (await services.sessions.update_status(ctx, book.id, "reading")).session
    for days_ago, page in entries:
        await services.ledger.append_entry(ctx, s.id, current_page=page, progress_date=day(days_ago))
    return s


# --- rebuild ---

@pytest.mark.asyncio
async def test_rebuild_counts_consecutive_days(services, ctx, book):
    await _log(services, ctx, book, [(2, 10), (1, 20), (0, 30)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 3
    assert streak.longest_streak == 3
    assert streak.total_days_active == 3
    assert streak.last_activity_date == TODAY
    assert streak.streak_start_date == day(2)


@pytest.mark.asyncio
async def test_rebuild_restarts_after_gap(services, ctx, book):
    await _log(services, ctx, book, [(10, 10), (9, 20), (8, 30), (0, 40)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 1
    assert streak.longest_streak == 3
    assert streak.total_days_active == 4
    assert streak.streak_start_date == TODAY


@pytest.mark.asyncio
async def test_streak_ending_yesterday_is_still_current(services, ctx, book):
    await _log(services, ctx, book, [(2, 10), (1, 20)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 2
    assert streak.last_activity_date == day(1)


@pytest.mark.asyncio
async def test_lapsed_streak_rebuilds_to_zero(services, ctx, book):
    await _log(services, ctx, book, [(5, 10), (4, 20)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 0
    assert streak.longest_streak == 2
    assert streak.last_activity_date == day(4)
    assert streak.streak_start_date is None


@pytest.mark.asyncio
async def test_rebuild_with_no_history(services, ctx):
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 0
    assert streak.longest_streak == 0
    assert streak.total_days_active == 0
    assert streak.last_activity_date is None


@pytest.mark.asyncio
async def test_rebuild_is_idempotent(services, ctx, book):
    await _log(services, ctx, book, [(12, 5), (11, 9), (3, 20), (1, 21), (0, 50)])
    first = await services.streaks.rebuild_streak(ctx)
    snapshot = (first.current_streak, first.longest_streak, first.total_days_active, first.last_activity_date)
    second = await services.streaks.rebuild_streak(ctx)
    assert (second.current_streak, second.longest_streak, second.total_days_active, second.last_activity_date) == snapshot
    assert second.current_streak <= second.longest_streak


@pytest.mark.asyncio
async def test_only_days_meeting_threshold_count(services, ctx, book):
    await _log(services, ctx, book, [(1, 25), (0, 35)])
    await services.streaks.update_threshold(ctx, 20)
    streak = await services.streaks.rebuild_streak(ctx)
    # yesterday: 25 pages (met); today: 10 pages (not met)
    assert streak.current_streak == 1
    assert streak.total_days_active == 1
    assert streak.last_activity_date == day(1)
    assert services.streaks.threshold_met(25, 20) is True
    assert services.streaks.threshold_met(10, 20) is False


@pytest.mark.asyncio
async def test_day_totals_sum_all_entries_of_the_day(services, ctx, book):
    await services.streaks.update_threshold(ctx, 20)
    await _log(services, ctx, book, [(0, 8), (0, 15), (0, 22)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 1


def test_day_bucket(services):
    assert services.streaks.day_bucket(TODAY, TZ) == "2025-03-15"
    # 02:00 UTC on the 15th is the evening of the 14th in New York
    assert services.streaks.day_bucket(datetime(2025, 3, 15, 2, 0, tzinfo=UTC), TZ) == "2025-03-14"
    assert services.streaks.day_bucket(datetime(2025, 3, 15, 2, 0, tzinfo=UTC), "UTC") == "2025-03-15"


# --- reset check ---

@pytest.mark.asyncio
async def test_check_and_reset_zeroes_lapsed_streak(services, ctx):
    streak = await services.streaks.get_or_create(None)
    streak.current_streak = 5
    streak.longest_streak = 7
    streak.last_activity_date = day(3)

    assert await services.streaks.check_and_reset_streak_if_needed(ctx) is True
    assert streak.current_streak == 0
    assert streak.longest_streak == 7
    assert await services.streaks.check_and_reset_streak_if_needed(ctx) is False


@pytest.mark.asyncio
async def test_check_and_reset_keeps_live_streak(services, ctx):
    streak = await services.streaks.get_or_create(None)
    streak.current_streak = 4
    streak.longest_streak = 4
    streak.last_activity_date = day(1)

    assert await services.streaks.check_and_reset_streak_if_needed(ctx) is False
    assert streak.current_streak == 4


# --- threshold / timezone / enabled ---

@pytest.mark.parametrize("value,message", [
    (0, "at least 1"),
    (-5, "at least 1"),
    (10000, "cannot exceed 9999"),
    (2.5, "whole number"),
    ("12", "whole number"),
    (True, "whole number"),
])
def test_validate_threshold_rejects(value, message):
    with pytest.raises(ValidationError, match=message) as exc_info:
        validate_threshold(value)
    assert exc_info.value.code == "THRESHOLD_OUT_OF_RANGE"


def test_validate_threshold_bounds_are_inclusive():
    assert validate_threshold(1) == 1
    assert validate_threshold(9999) == 9999


@pytest.mark.asyncio
async def test_update_threshold_does_not_rebuild(services, ctx, book):
    await _log(services, ctx, book, [(1, 25), (0, 35)])
    await services.streaks.rebuild_streak(ctx)
    streak = await services.streaks.update_threshold(ctx, 20)
    assert streak.daily_threshold == 20
    assert streak.current_streak == 2

    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 1


@pytest.mark.asyncio
async def test_set_timezone_rebuilds_with_new_day_boundaries(services, ctx, book):
    await _log(services, ctx, book, [(1, 10)])
    streak = await services.streaks.rebuild_streak(ctx)
    assert streak.current_streak == 1

    # Already the 16th in Kiritimati, so the 14th is two days back
    streak = await services.streaks.set_timezone(ctx, "Pacific/Kiritimati")
    assert streak.user_timezone == "Pacific/Kiritimati"
    assert streak.current_streak == 0
    assert streak.longest_streak == 1


@pytest.mark.asyncio
async def test_set_invalid_timezone_leaves_row_untouched(services, ctx):
    with pytest.raises(ValidationError) as exc_info:
        await services.streaks.set_timezone(ctx, "Atlantis/Capital")
    assert exc_info.value.code == "INVALID_TIMEZONE"
    streak = await services.streaks.get_or_create(None)
    assert streak.user_timezone == TZ


@pytest.mark.asyncio
async def test_set_streak_enabled(services, ctx):
    streak = await services.streaks.set_streak_enabled(ctx, False)
    assert streak.streak_enabled is False

    with pytest.raises(ValidationError):
        await services.streaks.set_streak_enabled(ctx, True, daily_threshold=0)
    assert streak.streak_enabled is False

    streak = await services.streaks.set_streak_enabled(ctx, True, daily_threshold=15)
    assert streak.streak_enabled is True
    assert streak.daily_threshold == 15


@pytest.mark.asyncio
async def test_get_or_create_is_per_user(services):
    default = await services.streaks.get_or_create(None)
    other = await services.streaks.get_or_create(7)
    assert default.id != other.id
    assert other.user_id == 7
    assert (await services.streaks.get_or_create(None)).id == default.id


# --- snapshot and analytics ---

@pytest.mark.asyncio
async def test_get_streak_snapshot(services, ctx, book):
    await _log(services, ctx, book, [(1, 10), (0, 40)])
    await services.streaks.rebuild_streak(ctx)
    snapshot = await services.streaks.get_streak(ctx)
    assert snapshot.streak.current_streak == 2
    assert snapshot.today_pages_read == 30
    assert snapshot.threshold_met_today is True
    assert snapshot.hours_remaining_today == 12.0
    assert snapshot.timezone == TZ


@pytest.mark.asyncio
async def test_activity_history_fills_every_day(services, ctx, book):
    await services.streaks.update_threshold(ctx, 15)
    await _log(services, ctx, book, [(2, 20), (0, 30)])
    history = await services.streaks.activity_history(ctx, 7)

    assert [h.date for h in history] == [day(2), day(1), day(0)]
    assert [h.pages_read for h in history] == [20, 0, 10]
    assert [h.threshold_met for h in history] == [True, False, False]


@pytest.mark.asyncio
async def test_activity_history_window(services, ctx, book):
    await _log(services, ctx, book, [(20, 5), (0, 10)])
    history = await services.streaks.activity_history(ctx, 1)
    assert [h.date for h in history] == [day(1), day(0)]


@pytest.mark.asyncio
async def test_activity_history_empty(services, ctx):
    assert await services.streaks.activity_history(ctx, 30) == []


@pytest.mark.parametrize("days", [0, 3651, -1])
@pytest.mark.asyncio
async def test_activity_history_days_bounds(services, ctx, days):
    with pytest.raises(ValidationError, match="between 1 and 3650"):
        await services.streaks.activity_history(ctx, days)


@pytest.mark.asyncio
async def test_page_stats(services, ctx, book):
    await _log(services, ctx, book, [(10, 10), (2, 30), (0, 60)])
    stats = await services.streaks.page_stats(ctx)
    assert stats.today == 30
    assert stats.last_7_days == 50
    assert stats.last_30_days == 60
    assert stats.average_per_day_30 == 20
    assert stats.all_time == 60


@pytest.mark.asyncio
async def test_streaks_are_scoped_per_user(services, ctx, book):
    await _log(services, ctx, book, [(0, 10)])
    other = OperationContext(user_id=7, timezone=TZ)
    streak = await services.streaks.rebuild_streak(other)
    assert streak.current_streak == 0
    assert (await services.streaks.rebuild_streak(ctx)).current_streak == 1


@pytest.mark.parametrize("value,expected", [
    (7, 7),
    ("45", 45),
    ("all-time", 3650),
    # 1 January through 15 March
    ("this-year", 74),
])
def test_resolve_history_days(services, ctx, value, expected):
    assert services.streaks.resolve_history_days(ctx, value) == expected


def test_resolve_history_days_rejects_unknown_range(services, ctx):
    with pytest.raises(ValidationError, match="'this-year' or 'all-time'"):
        services.streaks.resolve_history_days(ctx, "last-decade")
