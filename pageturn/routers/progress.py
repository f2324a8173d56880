from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.database import get_session
from pageturn.dependencies import Services, get_context, get_services
from pageturn.errors import ValidationError
from pageturn.schemas.progress import ProgressCreate, ProgressResponse, ProgressUpdate
from pageturn.services.clock import OperationContext
from pageturn.services.collaborators import SqlBookLookup, require_book

router = APIRouter(tags=["progress"])


@router.post("/api/books/{book_id}/progress", response_model=ProgressResponse, status_code=201)
async def log_progress(
    book_id: int,
    data: ProgressCreate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await require_book(SqlBookLookup(session), book_id)
    active = await services.sessions.get_active_session(book_id)
    if active is None:
        raise ValidationError(
            "No active reading session found. Please set a reading status first.",
            details={"book_id": book_id},
        )
    entry = await services.ledger.append_entry(ctx, active.id, require_reading=True, **data.model_dump())
    await services.streaks.rebuild_streak(ctx)
    await session.commit()
    await session.refresh(entry)
    return entry


@router.get("/api/books/{book_id}/progress", response_model=list[ProgressResponse])
async def list_progress(
    book_id: int,
    session_id: int | None = Query(None, description="Session to list; defaults to the active session"),
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
):
    await require_book(SqlBookLookup(session), book_id)
    if session_id is None:
        active = await services.sessions.get_active_session(book_id)
        if active is None:
            return []
        session_id = active.id
    return await services.ledger.all_for_session(session_id)


@router.patch("/api/progress/{entry_id}", response_model=ProgressResponse)
async def edit_progress(
    entry_id: int,
    data: ProgressUpdate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    entry = await services.ledger.edit_entry(ctx, entry_id, data.model_dump(exclude_unset=True))
    await services.streaks.rebuild_streak(ctx)
    await session.commit()
    await session.refresh(entry)
    return entry


@router.delete("/api/progress/{entry_id}", status_code=204)
async def delete_progress(
    entry_id: int,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.ledger.delete_entry(ctx, entry_id)
    await services.streaks.rebuild_streak(ctx)
    await session.commit()


@router.post("/api/sessions/{session_id}/recompute")
async def recompute_session(
    session_id: int,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    await services.sessions.get_session(session_id)
    changed = await services.ledger.recompute_session_chain(session_id)
    if changed:
        await services.streaks.rebuild_streak(ctx)
    await session.commit()
    return {"session_id": session_id, "entries_updated": changed}
