from datetime import UTC, date, datetime
from enum import StrEnum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pageturn.database import Base


class SessionStatus(StrEnum):
    TO_READ = "to-read"
    READ_NEXT = "read-next"
    READING = "reading"
    READ = "read"
    DNF = "dnf"


# Plain string values so rows loaded from the database compare directly.
PLANNING_STATUSES = frozenset({SessionStatus.TO_READ.value, SessionStatus.READ_NEXT.value})
FINISHED_STATUSES = frozenset({SessionStatus.READ.value, SessionStatus.DNF.value})


class ReadingSession(Base):
    __tablename__ = "reading_sessions"
    __table_args__ = (
        UniqueConstraint("book_id", "session_number", name="uq_reading_sessions_book_number"),
        # At most one active session per book; races surface as IntegrityError.
        Index(
            "uq_reading_sessions_one_active",
            "book_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id", ondelete="CASCADE"), index=True)
    session_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SessionStatus.TO_READ)
    started_date: Mapped[date | None] = mapped_column(Date)
    completed_date: Mapped[date | None] = mapped_column(Date)
    dnf_date: Mapped[date | None] = mapped_column(Date)
    rating: Mapped[int | None] = mapped_column(Integer)
    review: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    read_next_order: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    book: Mapped["Book"] = relationship(back_populates="sessions")
    progress_entries: Mapped[list["ProgressLog"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ProgressLog.progress_date",
    )
