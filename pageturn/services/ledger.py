"""Dated progress entries for a reading session.

Each entry records where the reader was on a calendar day. ``pages_read``
is the delta from the entry immediately before it in the same session, in
(progress_date, id) order; the first entry of a session counts all of its
pages. Entries must be monotonic over time: an entry may not be lower than
anything before it nor higher than anything after it.

Editing or deleting an entry only recomputes the edited entry unless
cascading is enabled (``PAGETURN_CASCADE_PAGES_READ``), in which case the
whole session chain is recomputed. :meth:`ProgressLedger.recompute_session_chain`
is always available to repair a chain explicitly.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.config import CASCADE_PAGES_READ
from pageturn.errors import NotFoundError, TemporalConflictError, ValidationError
from pageturn.models import Book, ProgressLog, ReadingSession, SessionStatus
from pageturn.services.clock import OperationContext, TimezoneClock, parse_day
from pageturn.services.collaborators import BookLookup, require_book
from pageturn.users import user_clause

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"current_page", "current_percentage", "progress_date", "notes"}


def calculate_percentage(page: int, total_pages: int) -> float:
    return min(100.0, max(0.0, round(page / total_pages * 100, 2)))


def calculate_page(percentage: float, total_pages: int) -> int:
    return int(round(percentage / 100 * total_pages))


def resolve_position(book: Book, current_page: int | None, current_percentage: float | None) -> tuple[int, float]:
    """Return (page, percentage), deriving whichever one was not supplied."""
    if current_page is None and current_percentage is None:
        raise ValidationError(
            "Either current_page or current_percentage is required",
            details={"field": "current_page"},
        )
    if current_page is not None and current_page < 0:
        raise ValidationError("current_page must be >= 0", details={"field": "current_page"})
    if current_percentage is not None:
        current_percentage = min(100.0, max(0.0, float(current_percentage)))

    if current_page is not None and current_percentage is not None:
        return current_page, current_percentage
    if not book.total_pages:
        field = "current_page" if current_page is not None else "current_percentage"
        raise ValidationError(
            "Book has no total page count; set total pages before logging progress this way",
            code="PAGES_REQUIRED",
            details={"field": field, "book_id": book.id},
        )
    if current_page is not None:
        return current_page, calculate_percentage(current_page, book.total_pages)
    return calculate_page(current_percentage, book.total_pages), current_percentage


def _sort_key(entry: ProgressLog) -> tuple[date, int]:
    return entry.progress_date, entry.id


def _is_before(entry: ProgressLog, day: date, entry_id: int | None) -> bool:
    """Whether ``entry`` sorts before position (day, entry_id); None means end of day."""
    if entry.progress_date != day:
        return entry.progress_date < day
    return entry_id is None or entry.id < entry_id


def previous_entry(entries: list[ProgressLog], day: date, entry_id: int | None = None) -> ProgressLog | None:
    earlier = [e for e in entries if e.id != entry_id and _is_before(e, day, entry_id)]
    return max(earlier, key=_sort_key) if earlier else None


def pages_read_since(page: int, previous: ProgressLog | None) -> int:
    if previous is None:
        return page
    return max(0, page - (previous.current_page or 0))


def _describe(entry: ProgressLog, side: str, value: float) -> dict[str, Any]:
    return {"id": entry.id, "date": entry.progress_date.isoformat(), "progress": value, "type": side}


def validate_timeline(
    entries: list[ProgressLog],
    day: date,
    value: float,
    use_percentage: bool,
    entry_id: int | None = None,
) -> None:
    """Reject ``value`` at (day, entry_id) if it breaks monotonic progress."""

    def measure(e: ProgressLog) -> float:
        return e.current_percentage if use_percentage else e.current_page

    others = [e for e in entries if e.id != entry_id]
    before = [e for e in others if _is_before(e, day, entry_id)]
    after = [e for e in others if not _is_before(e, day, entry_id)]
    unit = "%" if use_percentage else " pages"

    if before:
        highest = max(before, key=lambda e: (measure(e), _sort_key(e)))
        if value < measure(highest):
            raise TemporalConflictError(
                f"Progress must be at least {measure(highest):g}{unit} "
                f"(your progress on {highest.progress_date.isoformat()})",
                conflicting_entry=_describe(highest, "before", measure(highest)),
            )
    if after:
        lowest = min(after, key=lambda e: (measure(e), _sort_key(e)))
        if value > measure(lowest):
            raise TemporalConflictError(
                f"Progress cannot exceed {measure(lowest):g}{unit} "
                f"(your progress on {lowest.progress_date.isoformat()})",
                conflicting_entry=_describe(lowest, "after", measure(lowest)),
            )


class ProgressLedger:
    def __init__(
        self,
        db: AsyncSession,
        books: BookLookup,
        clock: TimezoneClock,
        cascade: bool = CASCADE_PAGES_READ,
    ) -> None:
        self.db = db
        self.books = books
        self.clock = clock
        self.cascade = cascade

    async def _get_session(self, session_id: int) -> ReadingSession:
        reading_session = await self.db.get(ReadingSession, session_id)
        if reading_session is None:
            raise NotFoundError("Session not found", details={"session_id": session_id})
        return reading_session

    async def _get_entry(self, entry_id: int) -> ProgressLog:
        entry = await self.db.get(ProgressLog, entry_id)
        if entry is None:
            raise NotFoundError("Progress entry not found", details={"entry_id": entry_id})
        return entry

    @staticmethod
    def _require_mutable(reading_session: ReadingSession) -> None:
        if not reading_session.is_active:
            raise ValidationError(
                "Progress of an archived session cannot be changed",
                details={"session_id": reading_session.id},
            )

    async def append_entry(
        self,
        ctx: OperationContext,
        session_id: int,
        *,
        current_page: int | None = None,
        current_percentage: float | None = None,
        progress_date: str | date | None = None,
        notes: str | None = None,
        require_reading: bool = False,
    ) -> ProgressLog:
        reading_session = await self._get_session(session_id)
        if not reading_session.is_active:
            raise ValidationError(
                "No active reading session found. Please set a reading status first.",
                details={"session_id": session_id},
            )
        if require_reading and reading_session.status != SessionStatus.READING:
            raise ValidationError(
                "Can only log progress for books with 'reading' status",
                details={"status": reading_session.status},
            )
        book = await require_book(self.books, reading_session.book_id)

        day = parse_day(progress_date) if progress_date is not None else self.clock.today_date(ctx.timezone)
        page, percentage = resolve_position(book, current_page, current_percentage)
        use_percentage = current_page is None

        entries = await self.all_for_session(session_id)
        validate_timeline(entries, day, percentage if use_percentage else page, use_percentage)

        entry = ProgressLog(
            user_id=ctx.user_id,
            book_id=book.id,
            session_id=reading_session.id,
            current_page=page,
            current_percentage=percentage,
            progress_date=day,
            notes=notes,
            pages_read=pages_read_since(page, previous_entry(entries, day)),
        )
        self.db.add(entry)
        reading_session.updated_at = self.clock.now()
        await self.db.flush()
        if self.cascade:
            await self.recompute_session_chain(session_id)
        return entry

    async def edit_entry(self, ctx: OperationContext, entry_id: int, patch: dict[str, Any]) -> ProgressLog:
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}", details={"fields": sorted(unknown)})

        entry = await self._get_entry(entry_id)
        if entry.session_id is None:
            raise ValidationError("Progress entry has no session", details={"entry_id": entry_id})
        reading_session = await self._get_session(entry.session_id)
        self._require_mutable(reading_session)
        book = await require_book(self.books, entry.book_id)

        new_page = patch.get("current_page")
        new_percentage = patch.get("current_percentage")
        if new_page is None and new_percentage is None:
            page, percentage = entry.current_page, entry.current_percentage
            use_percentage = False
        else:
            page, percentage = resolve_position(book, new_page, new_percentage)
            use_percentage = new_page is None
        day = parse_day(patch["progress_date"]) if patch.get("progress_date") is not None else entry.progress_date

        entries = await self.all_for_session(reading_session.id)
        validate_timeline(entries, day, percentage if use_percentage else page, use_percentage, entry_id=entry.id)

        entry.current_page = page
        entry.current_percentage = percentage
        entry.progress_date = day
        if "notes" in patch:
            entry.notes = patch["notes"]
        entry.pages_read = pages_read_since(page, previous_entry(entries, day, entry.id))
        await self.db.flush()

        if self.cascade:
            await self.recompute_session_chain(reading_session.id)
        logger.info("Edited progress entry %s (session %s)", entry.id, reading_session.id)
        return entry

    async def delete_entry(self, ctx: OperationContext, entry_id: int) -> ProgressLog:
        entry = await self._get_entry(entry_id)
        if entry.session_id is not None:
            self._require_mutable(await self._get_session(entry.session_id))
        await self.db.delete(entry)
        await self.db.flush()
        if self.cascade and entry.session_id is not None:
            await self.recompute_session_chain(entry.session_id)
        logger.info("Deleted progress entry %s", entry_id)
        return entry

    async def recompute_session_chain(self, session_id: int) -> int:
        """Recompute pages_read for every entry of a session; returns how many changed."""
        changed = 0
        previous = None
        for entry in await self.all_for_session(session_id):
            expected = pages_read_since(entry.current_page, previous)
            if entry.pages_read != expected:
                entry.pages_read = expected
                changed += 1
            previous = entry
        if changed:
            await self.db.flush()
        return changed

    # --- reads ---

    async def all_for_session(self, session_id: int) -> list[ProgressLog]:
        result = await self.db.execute(
            select(ProgressLog)
            .where(ProgressLog.session_id == session_id)
            .order_by(ProgressLog.progress_date, ProgressLog.id)
        )
        return list(result.scalars().all())

    async def latest_for_session(self, session_id: int) -> ProgressLog | None:
        result = await self.db.execute(
            select(ProgressLog)
            .where(ProgressLog.session_id == session_id)
            .order_by(ProgressLog.progress_date.desc(), ProgressLog.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def has_progress(self, session_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(ProgressLog.id)).where(ProgressLog.session_id == session_id)
        )
        return (result.scalar() or 0) > 0

    async def has_completion_entry(self, session_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(ProgressLog.id)).where(
                ProgressLog.session_id == session_id,
                ProgressLog.current_percentage >= 100,
            )
        )
        return (result.scalar() or 0) > 0

    async def all_for_user(self, ctx: OperationContext) -> list[ProgressLog]:
        result = await self.db.execute(
            select(ProgressLog)
            .where(user_clause(ProgressLog.user_id, ctx.user_id))
            .order_by(ProgressLog.progress_date, ProgressLog.id)
        )
        return list(result.scalars().all())

    def _local_day(self, ctx: OperationContext, value: str | date | datetime) -> date:
        if isinstance(value, datetime):
            return parse_day(self.clock.storage_instant_to_local_date_string(value, ctx.timezone))
        return parse_day(value)

    async def activity_calendar(
        self,
        ctx: OperationContext,
        start: str | date | datetime,
        end: str | date | datetime,
    ) -> dict[date, int]:
        """Pages read per calendar day, inclusive range; instants are bucketed in ctx.timezone."""
        result = await self.db.execute(
            select(ProgressLog.progress_date, func.sum(ProgressLog.pages_read))
            .where(
                user_clause(ProgressLog.user_id, ctx.user_id),
                ProgressLog.progress_date >= self._local_day(ctx, start),
                ProgressLog.progress_date <= self._local_day(ctx, end),
            )
            .group_by(ProgressLog.progress_date)
            .order_by(ProgressLog.progress_date)
        )
        return {day: int(total or 0) for day, total in result.all()}

    async def total_pages_read_in_range(
        self,
        ctx: OperationContext,
        start: str | date | datetime,
        end: str | date | datetime,
    ) -> int:
        return sum((await self.activity_calendar(ctx, start, end)).values())

    async def average_pages_per_day(self, ctx: OperationContext, since: str | date | datetime) -> int:
        """Average over days with any logged progress since ``since``, rounded."""
        result = await self.db.execute(
            select(ProgressLog.progress_date, ProgressLog.pages_read).where(
                user_clause(ProgressLog.user_id, ctx.user_id),
                ProgressLog.progress_date >= self._local_day(ctx, since),
            )
        )
        daily: dict[date, int] = defaultdict(int)
        for day, pages in result.all():
            daily[day] += pages or 0
        if not daily:
            return 0
        return round(sum(daily.values()) / len(daily))

    async def earliest_progress_date(self, ctx: OperationContext) -> date | None:
        result = await self.db.execute(
            select(func.min(ProgressLog.progress_date)).where(user_clause(ProgressLog.user_id, ctx.user_id))
        )
        return result.scalar()
