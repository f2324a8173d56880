from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.database import get_session
from pageturn.dependencies import Services, get_context, get_services
from pageturn.schemas.session import (
    DnfRequest,
    DnfResponse,
    ReadNextOrderRequest,
    SessionDatesUpdate,
    SessionResponse,
    SessionSummaryResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from pageturn.services.clock import OperationContext

router = APIRouter(tags=["sessions"])


@router.post("/api/books/{book_id}/status", response_model=StatusUpdateResponse)
async def update_status(
    book_id: int,
    data: StatusUpdateRequest,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    # rating is only passed when sent, so an explicit null clears it
    fields = data.model_dump(exclude_unset=True, exclude={"status"})
    result = await services.sessions.update_status(ctx, book_id, data.status, **fields)
    if result.completion_entry is not None:
        await services.streaks.rebuild_streak(ctx)
    await session.commit()
    return StatusUpdateResponse(
        session=result.session,
        session_archived=result.session_archived,
        archived_session_number=result.archived_session_number,
        completion_entry=result.completion_entry,
    )


@router.post("/api/books/{book_id}/dnf", response_model=DnfResponse)
async def mark_as_dnf(
    book_id: int,
    data: DnfRequest | None = None,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    fields = data.model_dump(exclude_unset=True) if data else {}
    result = await services.sessions.mark_as_dnf(ctx, book_id, **fields)
    await session.commit()
    return DnfResponse(
        session=result.session,
        last_progress=result.last_progress,
        rating_updated=result.rating_updated,
        review_updated=result.review_updated,
    )


@router.post("/api/books/{book_id}/reread", response_model=SessionResponse, status_code=201)
async def start_reread(
    book_id: int,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    reading_session = await services.sessions.start_reread(ctx, book_id)
    await services.streaks.rebuild_streak(ctx)
    await session.commit()
    await session.refresh(reading_session)
    return reading_session


@router.get("/api/books/{book_id}/sessions", response_model=list[SessionSummaryResponse])
async def list_sessions(book_id: int, services: Services = Depends(get_services)):
    summaries = await services.sessions.session_summaries(book_id)
    return [
        SessionSummaryResponse(
            **SessionResponse.model_validate(s.session).model_dump(),
            total_entries=s.total_entries,
            total_pages_read=s.total_pages_read,
            first_progress_date=s.first_progress_date,
            last_progress_date=s.last_progress_date,
            latest_progress=s.latest_progress,
        )
        for s in summaries
    ]


@router.get("/api/books/{book_id}/sessions/active", response_model=SessionResponse)
async def get_active_session(book_id: int, services: Services = Depends(get_services)):
    reading_session = await services.sessions.get_active_session(book_id)
    if reading_session is None:
        raise HTTPException(status_code=404, detail="No active session for this book")
    return reading_session


@router.patch("/api/sessions/{session_id}", response_model=SessionResponse)
async def update_session_dates(
    session_id: int,
    data: SessionDatesUpdate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
):
    reading_session = await services.sessions.update_session_dates(session_id, **data.model_dump(exclude_unset=True))
    await session.commit()
    await session.refresh(reading_session)
    return reading_session


@router.delete("/api/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.sessions.delete_session(session_id)
    await services.streaks.rebuild_streak(ctx)
    await session.commit()


@router.get("/api/read-next", response_model=list[SessionResponse])
async def list_read_next(
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    return await services.sessions.list_read_next(ctx)


@router.put("/api/read-next/order", response_model=list[SessionResponse])
async def reorder_read_next(
    data: ReadNextOrderRequest,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    queue = await services.sessions.reorder_read_next(ctx, data.session_ids)
    await session.commit()
    return queue
