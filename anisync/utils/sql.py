"""Reusable SQL helpers for querying JSON columns on SQLite."""

from sqlalchemy.orm.base import Mapped
from sqlalchemy.sql import cast, column, exists, func, select
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.sqltypes import String

__all__ = ["escape_like", "json_array_equals", "json_array_like", "like_contains"]


def escape_like(value: str) -> str:
    """Escape SQL LIKE meta characters so user text is matched literally.

    The returned pattern must be used with `escape="\\\\"`.
    """
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def like_contains(value: str) -> str:
    """Build a LIKE pattern matching `value` anywhere in a string."""
    return f"%{escape_like(value)}%"


def _json_each(field: Mapped, path: str | None):
    if path is None:
        return func.json_each(field)
    return func.json_each(field, path)


def json_array_like(
    field: Mapped,
    pattern: str,
    *,
    path: str | None = None,
    case_insensitive: bool = True,
) -> ColumnElement[bool]:
    """Check if any element of a JSON array matches a LIKE pattern.

    Args:
        field (Mapped): Mapped JSON column holding the array (or an object
            containing it, see `path`).
        pattern (str): Ready-made LIKE pattern, escaped with a backslash.
        path (str | None): JSON path of the array inside the column, e.g.
            `$.synonyms`. Defaults to the column itself.
        case_insensitive (bool): Whether the match should be case-insensitive.

    Returns:
        ColumnElement[bool]: SQL condition that is True if any element matches.
    """
    v = cast(column("value"), String)
    if case_insensitive:
        v = v.collate("NOCASE")
    cond = v.like(pattern, escape="\\")
    return exists(select(1).select_from(_json_each(field, path)).where(cond))


def json_array_equals(
    field: Mapped, value: str, *, path: str | None = None
) -> ColumnElement[bool]:
    """Check if a JSON array holds `value`, ignoring case.

    Args:
        field (Mapped): Mapped JSON column holding the array.
        value (str): Exact string to look for.
        path (str | None): JSON path of the array inside the column.

    Returns:
        ColumnElement[bool]: SQL condition that is True if the value is present.
    """
    v = cast(column("value"), String).collate("NOCASE")
    return exists(select(1).select_from(_json_each(field, path)).where(v == value))
