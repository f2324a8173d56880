from fastmcp import FastMCP

from pageturn.mcp.client import PageturnClient
from pageturn.mcp.tools.reading import (
    add_book as _add_book,
    get_reading_sessions as _get_reading_sessions,
    log_progress as _log_progress,
    mark_dnf as _mark_dnf,
    set_reading_status as _set_reading_status,
    start_reread as _start_reread,
)
from pageturn.mcp.tools.streak import (
    get_streak as _get_streak,
    reading_activity as _reading_activity,
    rebuild_streak as _rebuild_streak,
    set_daily_threshold as _set_daily_threshold,
)


def create_mcp_server(client: PageturnClient) -> FastMCP:
    mcp = FastMCP(
        name="pageturn",
        instructions=(
            "Pageturn tracks reading progress across read-throughs of a book and "
            "keeps a daily reading streak. Books are identified by title and author. "
            "Log progress while a book is 'reading'; mark it 'read' or DNF to finish."
        ),
    )

    @mcp.tool()
    async def add_book(title: str, author: str, total_pages: int | None = None) -> dict:
        """Add a book to the to-read list. total_pages enables percentage progress."""
        return await _add_book(client, title=title, author=author, total_pages=total_pages)

    @mcp.tool()
    async def set_reading_status(
        title: str,
        author: str,
        status: str,
        rating: int | None = None,
        review: str | None = None,
        completed_date: str | None = None,
        confirm_archive: bool = False,
    ) -> dict:
        """Change a book's status: to-read, read-next, reading, read or dnf.
        Moving a book with logged progress back to to-read/read-next archives
        that read-through and needs confirm_archive=true."""
        return await _set_reading_status(
            client, title=title, author=author, status=status,
            rating=rating, review=review,
            completed_date=completed_date, confirm_archive=confirm_archive,
        )

    @mcp.tool()
    async def start_reread(title: str, author: str) -> dict:
        """Start a new read-through of a book that has been read before."""
        return await _start_reread(client, title=title, author=author)

    @mcp.tool()
    async def mark_dnf(
        title: str,
        author: str,
        rating: int | None = None,
        review: str | None = None,
        dnf_date: str | None = None,
    ) -> dict:
        """Mark the book currently being read as did-not-finish."""
        return await _mark_dnf(client, title=title, author=author, rating=rating, review=review, dnf_date=dnf_date)

    @mcp.tool()
    async def log_progress(
        title: str,
        author: str,
        current_page: int | None = None,
        current_percentage: float | None = None,
        progress_date: str | None = None,
        notes: str | None = None,
    ) -> dict:
        """Log where you are in a book by page or percentage, optionally for
        a past day (YYYY-MM-DD)."""
        return await _log_progress(
            client, title=title, author=author,
            current_page=current_page, current_percentage=current_percentage,
            progress_date=progress_date, notes=notes,
        )

    @mcp.tool()
    async def get_reading_sessions(title: str, author: str) -> list[dict]:
        """List every read-through of a book with its progress summary."""
        return await _get_reading_sessions(client, title=title, author=author)

    @mcp.tool()
    async def get_streak() -> dict:
        """Current and longest reading streak, plus today's pages against the goal."""
        return await _get_streak(client)

    @mcp.tool()
    async def rebuild_streak() -> dict:
        """Recompute the streak from the full progress history."""
        return await _rebuild_streak(client)

    @mcp.tool()
    async def set_daily_threshold(pages: int) -> dict:
        """Set how many pages a day count toward the streak (1-9999)."""
        return await _set_daily_threshold(client, pages=pages)

    @mcp.tool()
    async def reading_activity(days: int | str = 30) -> dict:
        """Pages read per day over the last N days, or "this-year" or "all-time"."""
        return await _reading_activity(client, days=days)

    return mcp
