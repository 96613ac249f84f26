"""Database error helpers."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

_UNIQUE_SQLSTATE = "23505"
_UNIQUE_SQLITE_ERRORNAMES = frozenset(
    {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
)


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == _UNIQUE_SQLSTATE:
        return True
    if getattr(original, "sqlite_errorname", None) in _UNIQUE_SQLITE_ERRORNAMES:
        return True
    message = str(original or error).lower()
    return "duplicate key" in message or "unique constraint" in message


__all__ = ["is_unique_violation"]
