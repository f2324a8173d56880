import datetime as dt

from pydantic import BaseModel


class ThresholdUpdate(BaseModel):
    daily_threshold: int


class TimezoneUpdate(BaseModel):
    timezone: str


class StreakEnabledUpdate(BaseModel):
    enabled: bool
    daily_threshold: int | None = None


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_activity_date: dt.date | None
    streak_start_date: dt.date | None
    total_days_active: int
    daily_threshold: int
    user_timezone: str
    streak_enabled: bool
    today_pages_read: int
    threshold_met_today: bool
    hours_remaining_today: float


class DailyActivityResponse(BaseModel):
    date: dt.date
    pages_read: int
    threshold_met: bool


class AnalyticsResponse(BaseModel):
    days: int
    daily_threshold: int
    history: list[DailyActivityResponse]


class PageStatsResponse(BaseModel):
    today: int
    last_7_days: int
    last_30_days: int
    average_per_day_30: int
    all_time: int
