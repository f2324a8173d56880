from datetime import UTC, date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pageturn.database import Base


class ProgressLog(Base):
    __tablename__ = "progress_logs"
    __table_args__ = (
        Index("ix_progress_logs_session_date", "session_id", "progress_date"),
        Index("ix_progress_logs_book_date", "book_id", "progress_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"))
    session_id: Mapped[int | None] = mapped_column(ForeignKey("reading_sessions.id", ondelete="CASCADE"))
    current_page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Calendar day in the reader's timezone, not an instant.
    progress_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    pages_read: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    session: Mapped["ReadingSession"] = relationship(back_populates="progress_entries")
