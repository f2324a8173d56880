from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.database import get_session
from pageturn.dependencies import Services, get_context, get_services
from pageturn.id import book_id_for
from pageturn.models import Book, SessionStatus
from pageturn.schemas.book import BookCreate, BookResponse, BookUpdate
from pageturn.services.clock import OperationContext

router = APIRouter(prefix="/api/books", tags=["books"])


async def _get_book_or_404(session: AsyncSession, book_id: int) -> Book:
    book = await session.get(Book, book_id)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.get("", response_model=list[BookResponse])
async def list_books(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Book).order_by(Book.title))
    return result.scalars().all()


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, session: AsyncSession = Depends(get_session)):
    return await _get_book_or_404(session, book_id)


@router.post("", response_model=BookResponse, status_code=201)
async def create_book(
    data: BookCreate,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    book_id = book_id_for(data.title, data.author)
    if await session.get(Book, book_id) is not None:
        raise HTTPException(status_code=409, detail="Book already exists")

    book = Book(id=book_id, **data.model_dump())
    session.add(book)
    await session.flush()
    # Every book starts with session #1 on the to-read list.
    await services.sessions.update_status(ctx, book.id, SessionStatus.TO_READ)
    await session.commit()
    await session.refresh(book)
    return book


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(book_id: int, data: BookUpdate, session: AsyncSession = Depends(get_session)):
    book = await _get_book_or_404(session, book_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(book, key, value)
    await session.commit()
    await session.refresh(book)
    return book


@router.delete("/{book_id}", status_code=204)
async def delete_book(
    book_id: int,
    session: AsyncSession = Depends(get_session),
    services: Services = Depends(get_services),
    ctx: OperationContext = Depends(get_context),
):
    book = await _get_book_or_404(session, book_id)
    await session.delete(book)
    await session.flush()
    await services.streaks.rebuild_streak(ctx)
    await session.commit()
