"""Daily reading streaks derived from the progress ledger.

A day counts toward a streak when the pages read on it (summed over every
entry bucketed to that calendar day in the user's timezone) reach the
daily threshold. The stored streak row is a cache of
:meth:`StreakEngine.rebuild_streak`; the only incremental write is the
reset check, which zeroes a streak that has lapsed since it was last built.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.config import DEFAULT_DAILY_THRESHOLD, MAX_DAILY_THRESHOLD, MIN_DAILY_THRESHOLD
from pageturn.errors import ValidationError
from pageturn.models import ProgressLog, Streak
from pageturn.services.clock import OperationContext, TimezoneClock, validate_timezone
from pageturn.services.ledger import ProgressLedger
from pageturn.users import UserId, owner_key

logger = logging.getLogger(__name__)

MIN_HISTORY_DAYS = 1
MAX_HISTORY_DAYS = 3650
THIS_YEAR = "this-year"
ALL_TIME = "all-time"


@dataclass
class StreakSnapshot:
    streak: Streak
    timezone: str
    today_pages_read: int
    threshold_met_today: bool
    hours_remaining_today: float


@dataclass
class DailyActivity:
    date: date
    pages_read: int
    threshold_met: bool


@dataclass
class PageStats:
    today: int
    last_7_days: int
    last_30_days: int
    average_per_day_30: int
    all_time: int


def validate_threshold(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            "Daily threshold must be a whole number",
            code="THRESHOLD_OUT_OF_RANGE",
            details={"field": "daily_threshold", "value": value},
        )
    if value < MIN_DAILY_THRESHOLD:
        raise ValidationError(
            f"Daily threshold must be at least {MIN_DAILY_THRESHOLD}",
            code="THRESHOLD_OUT_OF_RANGE",
            details={"field": "daily_threshold", "value": value, "min": MIN_DAILY_THRESHOLD},
        )
    if value > MAX_DAILY_THRESHOLD:
        raise ValidationError(
            f"Daily threshold cannot exceed {MAX_DAILY_THRESHOLD}",
            code="THRESHOLD_OUT_OF_RANGE",
            details={"field": "daily_threshold", "value": value, "max": MAX_DAILY_THRESHOLD},
        )
    return value


class StreakEngine:
    def __init__(self, db: AsyncSession, ledger: ProgressLedger, clock: TimezoneClock) -> None:
        self.db = db
        self.ledger = ledger
        self.clock = clock

    async def _find(self, user_id: UserId) -> Streak | None:
        result = await self.db.execute(select(Streak).where(Streak.owner_key == owner_key(user_id)))
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: UserId) -> Streak:
        streak = await self._find(user_id)
        if streak is not None:
            return streak
        # A concurrent first writer may insert the row between our select and insert.
        stmt = sqlite_insert(Streak).values(
            user_id=user_id,
            owner_key=owner_key(user_id),
            current_streak=0,
            longest_streak=0,
            total_days_active=0,
            daily_threshold=DEFAULT_DAILY_THRESHOLD,
            user_timezone=self.clock.default_timezone,
            streak_enabled=True,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["owner_key"])
        result = await self.db.execute(stmt)
        if result.rowcount:
            logger.info("Created streak record for user %s", user_id)
        return await self._find(user_id)

    def day_bucket(self, value: ProgressLog | date | datetime, timezone: str) -> str:
        """Calendar day (YYYY-MM-DD) an entry or instant belongs to in ``timezone``."""
        if isinstance(value, ProgressLog):
            value = value.progress_date
        if isinstance(value, datetime):
            return self.clock.storage_instant_to_local_date_string(value, timezone)
        return value.isoformat()

    @staticmethod
    def threshold_met(pages_read: int, daily_threshold: int) -> bool:
        return pages_read >= daily_threshold

    async def _daily_totals(self, ctx: OperationContext) -> dict[str, int]:
        totals: dict[str, int] = defaultdict(int)
        for entry in await self.ledger.all_for_user(ctx):
            totals[self.day_bucket(entry, ctx.timezone)] += entry.pages_read or 0
        return totals

    async def rebuild_streak(self, ctx: OperationContext) -> Streak:
        streak = await self.get_or_create(ctx.user_id)
        totals = await self._daily_totals(ctx)
        qualifying = sorted(
            date.fromisoformat(day) for day, pages in totals.items()
            if self.threshold_met(pages, streak.daily_threshold)
        )

        running = longest = 0
        run_start = previous = None
        for day in qualifying:
            if previous is not None and day - previous == timedelta(days=1):
                running += 1
            else:
                running = 1
                run_start = day
            longest = max(longest, running)
            previous = day

        yesterday = self.clock.today_date(ctx.timezone) - timedelta(days=1)
        if previous is None or previous < yesterday:
            current, run_start = 0, None
        else:
            current = running

        streak.current_streak = current
        streak.longest_streak = longest
        streak.last_activity_date = previous
        streak.streak_start_date = run_start
        streak.total_days_active = len(qualifying)
        await self.db.flush()
        logger.info(
            "Rebuilt streak for user %s: current=%d longest=%d active_days=%d",
            ctx.user_id, current, longest, len(qualifying),
        )
        return streak

    async def check_and_reset_streak_if_needed(self, ctx: OperationContext) -> bool:
        """Zero a lapsed current streak. Returns True when a reset was written."""
        streak = await self.get_or_create(ctx.user_id)
        if streak.current_streak == 0 or streak.last_activity_date is None:
            return False
        today = self.clock.today_date(ctx.timezone)
        if (today - streak.last_activity_date).days <= 1:
            return False
        logger.info(
            "Streak lapsed for user %s (last activity %s); resetting from %d",
            ctx.user_id, streak.last_activity_date, streak.current_streak,
        )
        streak.current_streak = 0
        streak.streak_start_date = None
        await self.db.flush()
        return True

    async def update_threshold(self, ctx: OperationContext, value) -> Streak:
        threshold = validate_threshold(value)
        streak = await self.get_or_create(ctx.user_id)
        streak.daily_threshold = threshold
        await self.db.flush()
        logger.info("Daily threshold for user %s set to %d", ctx.user_id, threshold)
        return streak

    async def set_timezone(self, ctx: OperationContext, timezone: str) -> Streak:
        validate_timezone(timezone)
        streak = await self.get_or_create(ctx.user_id)
        streak.user_timezone = timezone
        await self.db.flush()
        logger.info("Timezone for user %s set to %s; rebuilding streak", ctx.user_id, timezone)
        return await self.rebuild_streak(OperationContext(user_id=ctx.user_id, timezone=timezone))

    async def set_streak_enabled(self, ctx: OperationContext, enabled: bool, daily_threshold: int | None = None) -> Streak:
        if enabled and daily_threshold is not None:
            validate_threshold(daily_threshold)
        streak = await self.get_or_create(ctx.user_id)
        streak.streak_enabled = enabled
        if enabled and daily_threshold is not None:
            streak.daily_threshold = daily_threshold
        await self.db.flush()
        return streak

    async def get_streak(self, ctx: OperationContext) -> StreakSnapshot:
        streak = await self.get_or_create(ctx.user_id)
        today = self.clock.today_date(ctx.timezone)
        pages_today = await self.ledger.total_pages_read_in_range(ctx, today, today)
        return StreakSnapshot(
            streak=streak,
            timezone=ctx.timezone,
            today_pages_read=pages_today,
            threshold_met_today=self.threshold_met(pages_today, streak.daily_threshold),
            hours_remaining_today=self.clock.hours_remaining_today(ctx.timezone),
        )

    def resolve_history_days(self, ctx: OperationContext, value: int | str) -> int:
        """Turn a day count or a named range ("this-year", "all-time") into a day count."""
        if value == ALL_TIME:
            return MAX_HISTORY_DAYS
        if value == THIS_YEAR:
            today = self.clock.today_date(ctx.timezone)
            return (today - date(today.year, 1, 1)).days + 1
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"days must be between {MIN_HISTORY_DAYS} and {MAX_HISTORY_DAYS}, or '{THIS_YEAR}' or '{ALL_TIME}'",
                details={"field": "days", "value": value},
            ) from None

    async def activity_history(self, ctx: OperationContext, days: int) -> list[DailyActivity]:
        if isinstance(days, bool) or not isinstance(days, int) or not MIN_HISTORY_DAYS <= days <= MAX_HISTORY_DAYS:
            raise ValidationError(
                f"days must be between {MIN_HISTORY_DAYS} and {MAX_HISTORY_DAYS}",
                details={"field": "days", "value": days},
            )
        earliest = await self.ledger.earliest_progress_date(ctx)
        if earliest is None:
            return []
        streak = await self.get_or_create(ctx.user_id)
        today = self.clock.today_date(ctx.timezone)
        start = max(today - timedelta(days=days), earliest)
        calendar = await self.ledger.activity_calendar(ctx, start, today)

        history = []
        day = start
        while day <= today:
            pages = calendar.get(day, 0)
            history.append(DailyActivity(date=day, pages_read=pages, threshold_met=self.threshold_met(pages, streak.daily_threshold)))
            day += timedelta(days=1)
        return history

    async def page_stats(self, ctx: OperationContext) -> PageStats:
        today = self.clock.today_date(ctx.timezone)
        week_start = today - timedelta(days=6)
        month_start = today - timedelta(days=29)
        earliest = await self.ledger.earliest_progress_date(ctx)
        return PageStats(
            today=await self.ledger.total_pages_read_in_range(ctx, today, today),
            last_7_days=await self.ledger.total_pages_read_in_range(ctx, week_start, today),
            last_30_days=await self.ledger.total_pages_read_in_range(ctx, month_start, today),
            average_per_day_30=await self.ledger.average_pages_per_day(ctx, month_start),
            all_time=await self.ledger.total_pages_read_in_range(ctx, earliest, today) if earliest else 0,
        )
