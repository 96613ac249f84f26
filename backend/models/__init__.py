"""SQLModel models package."""

from .read_cursor import ReadCursor
from .seen_item import SeenItem

__all__ = [
    "ReadCursor",
    "SeenItem",
]
