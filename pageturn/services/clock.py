"""Calendar-day handling in the reader's timezone.

Progress and session dates are calendar days ("2025-12-08"), not instants.
The clock converts between those days and UTC instants, and answers
"what day is it" for a given IANA zone. The resolved zone travels with each
operation in an :class:`OperationContext`; nothing is cached between
operations.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.config import DEFAULT_TIMEZONE
from pageturn.errors import ValidationError
from pageturn.models import Streak
from pageturn.users import UserId, user_clause

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationContext:
    """Per-operation values resolved once and passed to every service call."""

    user_id: UserId
    timezone: str


def validate_timezone(timezone: str) -> ZoneInfo:
    if not timezone or not isinstance(timezone, str):
        raise ValidationError("Timezone is required", code="INVALID_TIMEZONE", details={"field": "timezone"})
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(
            f"Invalid timezone: {timezone}",
            code="INVALID_TIMEZONE",
            details={"field": "timezone", "value": timezone},
        ) from None


def parse_day(value: str | date) -> date:
    """Parse a YYYY-MM-DD string (a full ISO timestamp is truncated to its date)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    day_part = value.split("T", 1)[0]
    try:
        return date.fromisoformat(day_part)
    except ValueError:
        raise ValidationError(
            f"Invalid date format: {value}. Expected YYYY-MM-DD format.",
            details={"field": "date", "value": value},
        ) from None


class TimezoneClock:
    def __init__(self, now: Callable[[], datetime] | None = None, default_timezone: str = DEFAULT_TIMEZONE):
        self._now = now or (lambda: datetime.now(UTC))
        self.default_timezone = default_timezone

    def now(self) -> datetime:
        return self._now().astimezone(UTC)

    async def resolve_user_timezone(self, db: AsyncSession, user_id: UserId) -> str:
        result = await db.execute(select(Streak.user_timezone).where(user_clause(Streak.user_id, user_id)))
        timezone = result.scalar_one_or_none()
        return timezone or self.default_timezone

    async def context_for(self, db: AsyncSession, user_id: UserId = None) -> OperationContext:
        return OperationContext(user_id=user_id, timezone=await self.resolve_user_timezone(db, user_id))

    def local_date_to_storage_boundary(self, day: str | date, timezone: str) -> datetime:
        """Midnight of ``day`` in ``timezone``, as a UTC instant."""
        zone = validate_timezone(timezone)
        local_midnight = datetime.combine(parse_day(day), time.min, tzinfo=zone)
        return local_midnight.astimezone(UTC)

    def storage_instant_to_local_date_string(self, instant: datetime, timezone: str) -> str:
        zone = validate_timezone(timezone)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        return instant.astimezone(zone).date().isoformat()

    def today_date(self, timezone: str) -> date:
        return self.now().astimezone(validate_timezone(timezone)).date()

    def today(self, timezone: str) -> str:
        return self.today_date(timezone).isoformat()

    def hours_remaining_today(self, timezone: str) -> float:
        tomorrow = self.today_date(timezone) + timedelta(days=1)
        end_of_day = self.local_date_to_storage_boundary(tomorrow, timezone)
        remaining = (end_of_day - self.now()).total_seconds() / 3600
        return round(max(0.0, remaining), 2)
