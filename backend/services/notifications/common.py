"""Shared helpers for account-scoped activity stores."""

from __future__ import annotations

import logging
from typing import Any, cast

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

logger = logging.getLogger(__name__)


def eq(column: Any, value: Any) -> ColumnElement[bool]:
    """Typed equality expression helper."""
    return cast(ColumnElement[bool], column == value)


def in_(column: Any, values: Any) -> ColumnElement[bool]:
    """Typed membership expression helper."""
    return cast(ColumnElement[bool], cast(Any, column).in_(values))


class BestEffortStore:
    """Base for account-scoped stores that fall back to memory on storage errors."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None,
        account_id: str,
    ) -> None:
        normalized_account_id = account_id.strip()
        if not normalized_account_id:
            raise ValueError("account_id must not be empty")
        self.account_id = normalized_account_id
        self._session_maker = session_maker

    @property
    def is_persistent(self) -> bool:
        return self._session_maker is not None

    def _degrade(self, error: Exception, *, operation: str) -> None:
        if self._session_maker is None:
            return
        self._session_maker = None
        logger.warning(
            "Activity storage unavailable; continuing in memory",
            extra={
                "account_id": self.account_id,
                "store": type(self).__name__,
                "operation": operation,
            },
            exc_info=error,
        )
