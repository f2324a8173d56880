"""User identity for single- and multi-user deployments.

``UserId`` is ``int | None``. ``None`` is not "missing": it is the one
default user of a single-user install, and it is stored as SQL NULL. Every
user-scoped query must go through :func:`user_clause` so that NULL is
compared with ``IS NULL`` rather than ``=``.
"""

from sqlalchemy import ColumnElement
from sqlalchemy.orm import InstrumentedAttribute

UserId = int | None

DEFAULT_USER: UserId = None


def user_clause(column: InstrumentedAttribute, user_id: UserId) -> ColumnElement[bool]:
    if user_id is None:
        return column.is_(None)
    return column == user_id


def owner_key(user_id: UserId) -> int:
    """Non-null key for one-row-per-user tables; the default user maps to 0."""
    return 0 if user_id is None else user_id
