"""Reading session lifecycle: status transitions, archiving and re-reads.

A book has at most one active session. Finishing a read-through (``read``
or ``dnf``) archives it; starting over creates a new session with the next
session number rather than reopening the old one. The one-active-session
rule is enforced by a partial unique index, and losing a race against it
surfaces as :class:`ConflictError`.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.errors import (
    ArchiveConfirmationRequired,
    ConflictError,
    InternalError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from pageturn.models import FINISHED_STATUSES, PLANNING_STATUSES, Book, ProgressLog, ReadingSession, SessionStatus
from pageturn.services.clock import OperationContext, TimezoneClock, parse_day
from pageturn.services.collaborators import (
    DASHBOARD,
    LIBRARY,
    STATS,
    BookLookup,
    CacheInvalidationSignal,
    ExternalRatingSync,
    book_view,
    require_book,
)
from pageturn.services.ledger import ProgressLedger
from pageturn.users import user_clause

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass
class StatusUpdateResult:
    session: ReadingSession
    session_archived: bool = False
    archived_session_number: int | None = None
    completion_entry: ProgressLog | None = None


@dataclass
class DnfResult:
    session: ReadingSession
    last_progress: ProgressLog | None = None
    rating_updated: bool = False
    review_updated: bool = False


@dataclass
class SessionSummary:
    session: ReadingSession
    total_entries: int = 0
    total_pages_read: int = 0
    first_progress_date: date | None = None
    last_progress_date: date | None = None
    latest_progress: ProgressLog | None = None


def parse_status(value: str) -> SessionStatus:
    try:
        return SessionStatus(value)
    except ValueError:
        allowed = ", ".join(f"'{s.value}'" for s in SessionStatus)
        raise ValidationError(
            f"Invalid status. Must be one of {allowed}",
            code="INVALID_STATUS",
            details={"field": "status", "value": value},
        ) from None


def is_backward(from_status: str | None, to_status: str) -> bool:
    """Moving from an in-progress or finished read back to a planning status."""
    if from_status is None:
        return False
    return str(to_status) in PLANNING_STATUSES and str(from_status) not in PLANNING_STATUSES


def requires_archive_confirmation(from_status: str | None, to_status: str, has_progress: bool) -> bool:
    return has_progress and is_backward(from_status, to_status)


def validate_rating(rating: int | None) -> None:
    if rating is None:
        return
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be an integer between 1 and 5", details={"field": "rating", "value": rating})


class SessionStateMachine:
    def __init__(
        self,
        db: AsyncSession,
        books: BookLookup,
        ledger: ProgressLedger,
        clock: TimezoneClock,
        rating_sync: ExternalRatingSync,
        cache: CacheInvalidationSignal,
    ) -> None:
        self.db = db
        self.books = books
        self.ledger = ledger
        self.clock = clock
        self.rating_sync = rating_sync
        self.cache = cache

    # --- lookups ---

    async def get_session(self, session_id: int) -> ReadingSession:
        reading_session = await self.db.get(ReadingSession, session_id)
        if reading_session is None:
            raise NotFoundError("Session not found", details={"session_id": session_id})
        return reading_session

    async def get_active_session(self, book_id: int) -> ReadingSession | None:
        result = await self.db.execute(
            select(ReadingSession).where(ReadingSession.book_id == book_id, ReadingSession.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def sessions_for_book(self, book_id: int) -> list[ReadingSession]:
        result = await self.db.execute(
            select(ReadingSession)
            .where(ReadingSession.book_id == book_id)
            .order_by(ReadingSession.session_number.desc())
        )
        return list(result.scalars().all())

    async def session_summaries(self, book_id: int) -> list[SessionSummary]:
        await require_book(self.books, book_id)
        sessions = await self.sessions_for_book(book_id)
        result = await self.db.execute(
            select(
                ProgressLog.session_id,
                func.count(ProgressLog.id),
                func.coalesce(func.sum(ProgressLog.pages_read), 0),
                func.min(ProgressLog.progress_date),
                func.max(ProgressLog.progress_date),
            )
            .where(ProgressLog.book_id == book_id)
            .group_by(ProgressLog.session_id)
        )
        stats = {row[0]: row[1:] for row in result.all()}
        summaries = []
        for s in sessions:
            if s.id not in stats:
                summaries.append(SessionSummary(session=s))
                continue
            count, pages, first, last = stats[s.id]
            summaries.append(
                SessionSummary(
                    session=s,
                    total_entries=count,
                    total_pages_read=int(pages),
                    first_progress_date=first,
                    last_progress_date=last,
                    latest_progress=await self.ledger.latest_for_session(s.id),
                )
            )
        return summaries

    async def _latest_session(self, book_id: int) -> ReadingSession | None:
        result = await self.db.execute(
            select(ReadingSession)
            .where(ReadingSession.book_id == book_id)
            .order_by(ReadingSession.session_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _next_session_number(self, book_id: int) -> int:
        result = await self.db.execute(
            select(func.max(ReadingSession.session_number)).where(ReadingSession.book_id == book_id)
        )
        return (result.scalar() or 0) + 1

    async def has_completed_reads(self, book_id: int) -> bool:
        result = await self.db.execute(
            select(func.count(ReadingSession.id)).where(
                ReadingSession.book_id == book_id,
                ReadingSession.status == SessionStatus.READ,
            )
        )
        return (result.scalar() or 0) > 0

    # --- storage primitives ---

    async def _create_session(
        self, ctx: OperationContext, book_id: int, status: SessionStatus, **fields: Any
    ) -> ReadingSession:
        reading_session = ReadingSession(
            user_id=ctx.user_id,
            book_id=book_id,
            session_number=await self._next_session_number(book_id),
            status=status,
            is_active=True,
            **fields,
        )
        self.db.add(reading_session)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise await self._classify_conflict(book_id) from None
        return reading_session

    async def _classify_conflict(self, book_id: int) -> ConflictError | InternalError:
        """Work out which session constraint a failed insert hit by re-reading state."""
        if await self.get_active_session(book_id) is not None:
            logger.info("Lost race creating session for book %s: active session exists", book_id)
            return ConflictError(
                "An active session already exists for this book",
                code="ACTIVE_SESSION_EXISTS",
                details={"book_id": book_id},
            )
        latest = await self._latest_session(book_id)
        if latest is not None:
            return ConflictError(
                "Session number already taken; retry the operation",
                code="SESSION_NUMBER_TAKEN",
                details={"book_id": book_id, "session_number": latest.session_number},
            )
        logger.error("Session insert for book %s failed with no conflicting row", book_id)
        return InternalError("Failed to create reading session")

    async def archive(self, session_id: int) -> ReadingSession:
        reading_session = await self.get_session(session_id)
        await self._archive(reading_session)
        return reading_session

    async def _archive(self, reading_session: ReadingSession) -> None:
        was_queued = reading_session.status == SessionStatus.READ_NEXT
        reading_session.is_active = False
        reading_session.read_next_order = None
        await self.db.flush()
        if was_queued:
            await self.reindex_read_next(reading_session.user_id)
        logger.info("Archived session #%d of book %s", reading_session.session_number, reading_session.book_id)

    # --- rating/review ---

    async def _apply_rating(self, book: Book, reading_session: ReadingSession, rating: int | None) -> None:
        reading_session.rating = rating
        book.rating = rating
        await self.db.flush()
        try:
            await self.rating_sync.sync_rating(book, rating)
        except Exception:
            logger.warning("Rating sync failed for book %s; local rating kept", book.id, exc_info=True)

    def _invalidate(self, book_id: int) -> None:
        self.cache.invalidate({DASHBOARD, LIBRARY, STATS, book_view(book_id)})

    # --- transitions ---

    async def update_status(
        self,
        ctx: OperationContext,
        book_id: int,
        status: str,
        *,
        rating: int | None = UNSET,
        review: str | None = None,
        started_date: str | date | None = None,
        completed_date: str | date | None = None,
        confirm_archive: bool = False,
    ) -> StatusUpdateResult:
        target = parse_status(status)
        if target == SessionStatus.DNF:
            dnf = await self.mark_as_dnf(ctx, book_id, rating=rating, review=review, dnf_date=completed_date)
            return StatusUpdateResult(
                session=dnf.session,
                session_archived=True,
                archived_session_number=dnf.session.session_number,
            )

        book = await require_book(self.books, book_id)
        if rating is not UNSET:
            validate_rating(rating)
        started = parse_day(started_date) if started_date is not None else None
        completed = parse_day(completed_date) if completed_date is not None else None
        today = self.clock.today_date(ctx.timezone)

        active = await self.get_active_session(book_id)
        current = active or await self._latest_session(book_id)
        from_status = current.status if current else None
        has_progress = False
        if current is not None and is_backward(from_status, target):
            has_progress = await self.ledger.has_progress(current.id)
        if requires_archive_confirmation(from_status, target, has_progress) and not confirm_archive:
            raise ArchiveConfirmationRequired(
                f"Moving from '{from_status}' to '{target}' will archive session "
                f"#{current.session_number} and its progress; confirmation required",
                details={"from_status": from_status, "to_status": target, "session_number": current.session_number},
            )

        result: StatusUpdateResult
        if has_progress:
            # Progress is kept on the old session; the new status starts a fresh one.
            if active is not None:
                await self._archive(active)
            reading_session = await self._create_session(ctx, book_id, target)
            if target == SessionStatus.READ_NEXT:
                reading_session.read_next_order = await self._next_read_next_order(ctx)
            result = StatusUpdateResult(
                session=reading_session,
                session_archived=active is not None,
                archived_session_number=active.session_number if active is not None else None,
            )
            logger.info(
                "Book %s moved back to '%s'; new session #%d",
                book_id, target, reading_session.session_number,
            )
        else:
            reading_session = active
            if reading_session is None:
                reading_session = await self._create_session(ctx, book_id, SessionStatus.TO_READ)
            result = await self._transition_in_place(ctx, book, reading_session, target, started, completed, today)

        if review is not None:
            result.session.review = review
        if rating is not UNSET:
            await self._apply_rating(book, result.session, rating)
        await self.db.flush()
        self._invalidate(book_id)
        return result

    async def _transition_in_place(
        self,
        ctx: OperationContext,
        book: Book,
        reading_session: ReadingSession,
        target: SessionStatus,
        started: date | None,
        completed: date | None,
        today: date,
    ) -> StatusUpdateResult:
        if target == SessionStatus.READ:
            begun = started or reading_session.started_date
            if begun and completed and completed < begun:
                raise ValidationError(
                    "completed_date cannot be before started_date",
                    details={"field": "completed_date", "started_date": begun.isoformat()},
                )

        result = StatusUpdateResult(session=reading_session)
        leaving_queue = reading_session.status == SessionStatus.READ_NEXT and target != SessionStatus.READ_NEXT

        if target == SessionStatus.READ_NEXT and reading_session.status != SessionStatus.READ_NEXT:
            reading_session.read_next_order = await self._next_read_next_order(ctx)
        elif leaving_queue:
            reading_session.read_next_order = None

        if target == SessionStatus.READING:
            if started is not None or reading_session.started_date is None:
                reading_session.started_date = started or today
            reading_session.status = target
        elif target == SessionStatus.READ:
            if started is not None or reading_session.started_date is None:
                reading_session.started_date = started or completed or today
            finished_on = completed or today
            if book.total_pages and not await self.ledger.has_completion_entry(reading_session.id):
                result.completion_entry = await self.ledger.append_entry(
                    ctx,
                    reading_session.id,
                    current_page=book.total_pages,
                    current_percentage=100.0,
                    progress_date=finished_on,
                )
            reading_session.status = target
            reading_session.completed_date = finished_on
            await self._archive(reading_session)
            result.session_archived = True
            result.archived_session_number = reading_session.session_number
            logger.info("Book %s marked read (session #%d)", book.id, reading_session.session_number)
        else:
            reading_session.status = target

        await self.db.flush()
        if leaving_queue:
            await self.reindex_read_next(reading_session.user_id)
        return result

    async def mark_as_dnf(
        self,
        ctx: OperationContext,
        book_id: int,
        *,
        rating: int | None = UNSET,
        review: str | None = None,
        dnf_date: str | date | None = None,
    ) -> DnfResult:
        book = await require_book(self.books, book_id)
        active = await self.get_active_session(book_id)
        if active is None:
            raise ValidationError("No active reading session found for this book", details={"book_id": book_id})
        if active.status != SessionStatus.READING:
            raise ValidationError(
                f'Cannot mark as DNF from status "{active.status}". Must be "reading".',
                details={"status": active.status},
            )
        if rating is not UNSET:
            validate_rating(rating)

        last_progress = await self.ledger.latest_for_session(active.id)
        if dnf_date is not None:
            day = parse_day(dnf_date)
        elif last_progress is not None:
            day = last_progress.progress_date
        else:
            day = self.clock.today_date(ctx.timezone)

        active.status = SessionStatus.DNF
        active.dnf_date = day
        await self._archive(active)

        result = DnfResult(session=active, last_progress=last_progress)
        if review is not None:
            active.review = review
            result.review_updated = True
        if rating is not UNSET:
            await self._apply_rating(book, active, rating)
            result.rating_updated = True
        await self.db.flush()
        logger.info("Book %s marked DNF (session #%d)", book_id, active.session_number)
        self._invalidate(book_id)
        return result

    async def start_reread(self, ctx: OperationContext, book_id: int) -> ReadingSession:
        await require_book(self.books, book_id)
        if not await self.has_completed_reads(book_id):
            raise PreconditionError("Cannot start re-read: no completed reads found", details={"book_id": book_id})
        if await self.get_active_session(book_id) is not None:
            raise ConflictError(
                "An active session already exists for this book",
                code="ACTIVE_SESSION_EXISTS",
                details={"book_id": book_id},
            )
        reading_session = await self._create_session(
            ctx, book_id, SessionStatus.READING, started_date=self.clock.today_date(ctx.timezone)
        )
        logger.info("Started re-read of book %s (session #%d)", book_id, reading_session.session_number)
        self._invalidate(book_id)
        return reading_session

    async def update_session_dates(
        self,
        session_id: int,
        *,
        started_date: str | date | None = None,
        completed_date: str | date | None = None,
    ) -> ReadingSession:
        reading_session = await self.get_session(session_id)
        started = parse_day(started_date) if started_date is not None else reading_session.started_date
        completed = parse_day(completed_date) if completed_date is not None else reading_session.completed_date
        if started and completed and completed < started:
            raise ValidationError(
                "completed_date cannot be before started_date",
                details={"field": "completed_date"},
            )
        if completed_date is not None and str(reading_session.status) not in FINISHED_STATUSES:
            raise ValidationError(
                "Only finished sessions have a completion date",
                details={"field": "completed_date", "status": reading_session.status},
            )
        reading_session.started_date = started
        reading_session.completed_date = completed
        await self.db.flush()
        self._invalidate(reading_session.book_id)
        return reading_session

    async def delete_session(self, session_id: int) -> ReadingSession:
        """Delete a session and its progress entries."""
        reading_session = await self.get_session(session_id)
        was_queued = reading_session.status == SessionStatus.READ_NEXT and reading_session.is_active
        await self.db.delete(reading_session)
        await self.db.flush()
        if was_queued:
            await self.reindex_read_next(reading_session.user_id)
        logger.info("Deleted session #%d of book %s", reading_session.session_number, reading_session.book_id)
        self._invalidate(reading_session.book_id)
        return reading_session

    # --- read-next queue ---

    def _queue_query(self, user_id):
        return (
            select(ReadingSession)
            .where(
                ReadingSession.status == SessionStatus.READ_NEXT,
                ReadingSession.is_active.is_(True),
                user_clause(ReadingSession.user_id, user_id),
            )
            .order_by(ReadingSession.read_next_order, ReadingSession.id)
        )

    async def _next_read_next_order(self, ctx: OperationContext) -> int:
        result = await self.db.execute(
            select(func.max(ReadingSession.read_next_order)).where(
                ReadingSession.status == SessionStatus.READ_NEXT,
                ReadingSession.is_active.is_(True),
                user_clause(ReadingSession.user_id, ctx.user_id),
            )
        )
        highest = result.scalar()
        return 0 if highest is None else highest + 1

    async def list_read_next(self, ctx: OperationContext) -> list[ReadingSession]:
        result = await self.db.execute(self._queue_query(ctx.user_id))
        return list(result.scalars().all())

    async def reindex_read_next(self, user_id) -> None:
        """Renumber the queue 0..n-1, keeping its current order."""
        result = await self.db.execute(self._queue_query(user_id))
        for index, reading_session in enumerate(result.scalars().all()):
            reading_session.read_next_order = index
        await self.db.flush()

    async def reorder_read_next(self, ctx: OperationContext, session_ids: list[int]) -> list[ReadingSession]:
        queue = await self.list_read_next(ctx)
        by_id = {s.id: s for s in queue}
        if len(set(session_ids)) != len(session_ids) or set(session_ids) != set(by_id):
            raise ValidationError(
                "Order must list every read-next session exactly once",
                details={"expected": sorted(by_id), "received": session_ids},
            )
        for index, session_id in enumerate(session_ids):
            by_id[session_id].read_next_order = index
        await self.db.flush()
        self.cache.invalidate({DASHBOARD, LIBRARY})
        return [by_id[i] for i in session_ids]
