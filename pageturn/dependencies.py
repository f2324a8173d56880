"""Shared FastAPI dependencies.

Long-lived collaborators (clock, rating sync, cache signal) live on
``app.state`` and are swapped there in tests; services are built per
request around the request's database session.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.database import get_session
from pageturn.services.clock import OperationContext, TimezoneClock
from pageturn.services.collaborators import CacheInvalidationSignal, ExternalRatingSync, SqlBookLookup
from pageturn.services.ledger import ProgressLedger
from pageturn.services.sessions import SessionStateMachine
from pageturn.services.streaks import StreakEngine


@dataclass
class Services:
    ledger: ProgressLedger
    sessions: SessionStateMachine
    streaks: StreakEngine


def build_services(
    db: AsyncSession,
    clock: TimezoneClock,
    rating_sync: ExternalRatingSync,
    cache: CacheInvalidationSignal,
    cascade_pages_read: bool,
) -> Services:
    books = SqlBookLookup(db)
    ledger = ProgressLedger(db, books, clock, cascade=cascade_pages_read)
    return Services(
        ledger=ledger,
        sessions=SessionStateMachine(db, books, ledger, clock, rating_sync, cache),
        streaks=StreakEngine(db, ledger, clock),
    )


def get_clock(request: Request) -> TimezoneClock:
    return request.app.state.clock


def get_services(request: Request, session: AsyncSession = Depends(get_session)) -> Services:
    state = request.app.state
    return build_services(session, state.clock, state.rating_sync, state.cache_signal, state.cascade_pages_read)


async def get_context(
    session: AsyncSession = Depends(get_session),
    clock: TimezoneClock = Depends(get_clock),
) -> OperationContext:
    """Resolve the caller and their timezone once per request (single-user install)."""
    return await clock.context_for(session)
