"""Seen-set persistence for toast de-duplication."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import SeenItem

from .common import BestEffortStore, eq, in_
from .ids import SEEN_CATEGORIES, is_supported_category, normalize_item_ids

PERSIST_BATCH_SIZE = 200


class SeenSetStore(BestEffortStore):
    """Append-only sets of surfaced item ids, one per category.

    Ids are persisted per account and never removed. The primed flag is
    session-scoped: every new session primes each category once before it
    can report anything as new.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None,
        account_id: str,
    ) -> None:
        super().__init__(session_maker, account_id)
        self._ids: dict[str, set[str]] = {category: set() for category in SEEN_CATEGORIES}
        self._primed: set[str] = set()

    async def load(self) -> None:
        if self._session_maker is None:
            return
        category_column = cast(ColumnElement[str], SeenItem.category)
        item_id_column = cast(ColumnElement[str], SeenItem.item_id)
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(category_column, item_id_column).where(
                        eq(SeenItem.account_id, self.account_id)
                    )
                )
                rows = result.all()
        except SQLAlchemyError as exc:
            self._degrade(exc, operation="load")
            return

        for category, item_id in rows:
            if is_supported_category(category):
                self._ids[category].add(item_id)

    def is_primed(self, category: str) -> bool:
        self._require_category(category)
        return category in self._primed

    def contains(self, category: str, item_id: str) -> bool:
        self._require_category(category)
        return item_id in self._ids[category]

    async def mark_primed(self, category: str, ids: list[str]) -> None:
        """Record every id as seen without reporting any of them, and prime the category."""
        self._require_category(category)
        fresh_ids = self._absorb(category, ids)
        self._primed.add(category)
        await self._persist(category, fresh_ids)

    async def diff_and_mark(self, category: str, ids: list[str]) -> list[str]:
        """Return the ids not seen before, recording them as seen."""
        self._require_category(category)
        if category not in self._primed:
            return []
        fresh_ids = self._absorb(category, ids)
        await self._persist(category, fresh_ids)
        return fresh_ids

    def _absorb(self, category: str, ids: list[str]) -> list[str]:
        known_ids = self._ids[category]
        fresh_ids = [item_id for item_id in normalize_item_ids(ids) if item_id not in known_ids]
        known_ids.update(fresh_ids)
        return fresh_ids

    @staticmethod
    def _require_category(category: str) -> None:
        if not is_supported_category(category):
            raise ValueError(f"unsupported seen category: {category}")

    async def _persist(self, category: str, item_ids: list[str]) -> None:
        if self._session_maker is None or not item_ids:
            return
        try:
            async with self._session_maker() as session:
                for start in range(0, len(item_ids), PERSIST_BATCH_SIZE):
                    await self._insert_missing(
                        session,
                        category,
                        item_ids[start : start + PERSIST_BATCH_SIZE],
                    )
        except SQLAlchemyError as exc:
            self._degrade(exc, operation="persist")

    async def _insert_missing(
        self,
        session: AsyncSession,
        category: str,
        item_ids: list[str],
    ) -> None:
        item_id_column = cast(ColumnElement[str], SeenItem.item_id)
        existing_result = await session.execute(
            select(item_id_column).where(
                eq(SeenItem.account_id, self.account_id),
                eq(SeenItem.category, category),
                in_(SeenItem.item_id, item_ids),
            )
        )
        existing_ids = {row[0] for row in existing_result.all()}
        missing_ids = [item_id for item_id in item_ids if item_id not in existing_ids]
        if not missing_ids:
            return

        session.add_all(
            [
                SeenItem(account_id=self.account_id, category=category, item_id=item_id)
                for item_id in missing_ids
            ]
        )
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if not is_unique_violation(exc):
                raise
            # Another writer recorded some of these ids; insert the rest one at a time.
            for item_id in missing_ids:
                session.add(
                    SeenItem(account_id=self.account_id, category=category, item_id=item_id)
                )
                try:
                    await session.commit()
                except IntegrityError as item_exc:
                    await session.rollback()
                    if not is_unique_violation(item_exc):
                        raise
