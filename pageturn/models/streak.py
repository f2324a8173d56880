from datetime import UTC, date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pageturn.config import DEFAULT_DAILY_THRESHOLD, DEFAULT_TIMEZONE
from pageturn.database import Base


class Streak(Base):
    __tablename__ = "streaks"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer)
    # Non-null mirror of user_id (0 for the default user) so that a plain
    # unique constraint also covers the single-user row.
    owner_key: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date)
    streak_start_date: Mapped[date | None] = mapped_column(Date)
    total_days_active: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_DAILY_THRESHOLD)
    user_timezone: Mapped[str | None] = mapped_column(String(64), default=DEFAULT_TIMEZONE)
    streak_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))
