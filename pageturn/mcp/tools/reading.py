from pageturn.id import book_id_for
from pageturn.mcp.client import PageturnClient


async def add_book(client: PageturnClient, title: str, author: str, total_pages: int | None = None) -> dict:
    body = {"title": title, "author": author}
    if total_pages is not None:
        body["total_pages"] = total_pages
    return await client.post("/api/books", json=body)


async def set_reading_status(
    client: PageturnClient,
    title: str,
    author: str,
    status: str,
    rating: int | None = None,
    review: str | None = None,
    completed_date: str | None = None,
    confirm_archive: bool = False,
) -> dict:
    book_id = book_id_for(title, author)
    body = {"status": status, "confirm_archive": confirm_archive}
    if rating is not None:
        body["rating"] = rating
    if review is not None:
        body["review"] = review
    if completed_date is not None:
        body["completed_date"] = completed_date
    return await client.post(f"/api/books/{book_id}/status", json=body)


async def start_reread(client: PageturnClient, title: str, author: str) -> dict:
    book_id = book_id_for(title, author)
    return await client.post(f"/api/books/{book_id}/reread")


async def mark_dnf(
    client: PageturnClient,
    title: str,
    author: str,
    rating: int | None = None,
    review: str | None = None,
    dnf_date: str | None = None,
) -> dict:
    book_id = book_id_for(title, author)
    body = {}
    if rating is not None:
        body["rating"] = rating
    if review is not None:
        body["review"] = review
    if dnf_date is not None:
        body["dnf_date"] = dnf_date
    return await client.post(f"/api/books/{book_id}/dnf", json=body)


async def log_progress(
    client: PageturnClient,
    title: str,
    author: str,
    current_page: int | None = None,
    current_percentage: float | None = None,
    progress_date: str | None = None,
    notes: str | None = None,
) -> dict:
    book_id = book_id_for(title, author)
    body = {}
    if current_page is not None:
        body["current_page"] = current_page
    if current_percentage is not None:
        body["current_percentage"] = current_percentage
    if progress_date is not None:
        body["progress_date"] = progress_date
    if notes is not None:
        body["notes"] = notes
    return await client.post(f"/api/books/{book_id}/progress", json=body)


async def get_reading_sessions(client: PageturnClient, title: str, author: str) -> list[dict]:
    book_id = book_id_for(title, author)
    result = await client.get(f"/api/books/{book_id}/sessions")
    if isinstance(result, dict) and result.get("error"):
        return []
    return result
