"""Interfaces to systems outside the reading core, with default implementations."""

import logging
from typing import Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from pageturn.config import RATING_SYNC_TIMEOUT, RATING_SYNC_URL
from pageturn.errors import NotFoundError
from pageturn.models import Book

logger = logging.getLogger(__name__)

DASHBOARD = "dashboard"
LIBRARY = "library"
STATS = "stats"
STREAK = "streak"


def book_view(book_id: int) -> str:
    return f"book:{book_id}"


class BookLookup(Protocol):
    async def find_by_id(self, book_id: int) -> Book | None: ...


class SqlBookLookup:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, book_id: int) -> Book | None:
        return await self.db.get(Book, book_id)


async def require_book(books: BookLookup, book_id: int) -> Book:
    book = await books.find_by_id(book_id)
    if book is None:
        raise NotFoundError("Book not found", details={"book_id": book_id})
    return book


class ExternalRatingSync(Protocol):
    async def sync_rating(self, book: Book, rating: int | None) -> None: ...


class NullRatingSync:
    async def sync_rating(self, book: Book, rating: int | None) -> None:
        logger.debug("Rating sync disabled; book %s rating %s kept local", book.id, rating)


class HttpRatingSync:
    """Push ratings to an external catalog. Failures are logged and dropped."""

    def __init__(self, url: str, timeout: float = RATING_SYNC_TIMEOUT) -> None:
        self.url = url.rstrip("/")
        self.timeout = timeout

    async def sync_rating(self, book: Book, rating: int | None) -> None:
        payload = {"book_id": book.id, "title": book.title, "author": book.author, "rating": rating}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.url}/ratings", json=payload)
                if resp.status_code >= 400:
                    logger.warning("Rating sync rejected for book %s -> %d", book.id, resp.status_code)
                    return
            logger.info("Synced rating for book %s: %s", book.id, rating)
        except httpx.HTTPError as e:
            logger.warning("Rating sync failed for book %s: %s", book.id, e)


def default_rating_sync() -> ExternalRatingSync:
    if RATING_SYNC_URL:
        return HttpRatingSync(RATING_SYNC_URL)
    return NullRatingSync()


class CacheInvalidationSignal(Protocol):
    def invalidate(self, views: set[str]) -> None: ...


class LoggingCacheSignal:
    def invalidate(self, views: set[str]) -> None:
        logger.debug("Stale views: %s", ", ".join(sorted(views)))
