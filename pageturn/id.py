import hashlib
import re


def _normalize(value: str) -> str:
    s = re.sub(r"[^a-z0-9]", "", value.lower())
    return s[:50]


def book_id_for(title: str, author: str) -> int:
    """Stable book id derived from title and author.

    Lets callers that only know a book by name (MCP tools, imports) address
    it without a lookup round trip.
    """
    key = f"{_normalize(title)}:{_normalize(author)}"
    return int(hashlib.sha256(key.encode()).hexdigest()[:15], 16)
