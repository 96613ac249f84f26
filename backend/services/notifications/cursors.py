"""Per-thread read cursor persistence."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from db.errors import is_unique_violation
from models import ReadCursor

from .common import BestEffortStore, eq
from .ids import normalize_item_id
from .schemas import ensure_utc


class ReadCursorStore(BestEffortStore):
    """Monotonic read watermarks keyed by (account, thread).

    Reads are served from an in-memory mirror; ``load`` merges whatever is
    persisted into it, so another writer sharing the database is picked up on
    the next load. A watermark never moves backward.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None,
        account_id: str,
    ) -> None:
        super().__init__(session_maker, account_id)
        self._watermarks: dict[str, datetime] = {}

    async def load(self) -> None:
        if self._session_maker is None:
            return
        thread_id_column = cast(ColumnElement[str], ReadCursor.thread_id)
        watermark_column = cast(ColumnElement[datetime], ReadCursor.watermark)
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(thread_id_column, watermark_column).where(
                        eq(ReadCursor.account_id, self.account_id)
                    )
                )
                rows = result.all()
        except SQLAlchemyError as exc:
            self._degrade(exc, operation="load")
            return

        for thread_id, watermark in rows:
            self._advance(thread_id, ensure_utc(watermark))

    def get(self, thread_id: str) -> datetime | None:
        return self._watermarks.get(normalize_item_id(thread_id))

    def snapshot(self) -> dict[str, datetime]:
        return dict(self._watermarks)

    async def set(self, thread_id: str, timestamp: datetime) -> bool:
        """Advance a thread's watermark; return False when it would not move forward."""
        normalized_thread_id = normalize_item_id(thread_id)
        if not normalized_thread_id:
            raise ValueError("thread_id must not be empty")
        watermark = ensure_utc(timestamp)
        if not self._advance(normalized_thread_id, watermark):
            return False
        await self._persist(normalized_thread_id, watermark)
        return True

    def _advance(self, thread_id: str, watermark: datetime) -> bool:
        current = self._watermarks.get(thread_id)
        if current is not None and watermark <= current:
            return False
        self._watermarks[thread_id] = watermark
        return True

    async def _persist(self, thread_id: str, watermark: datetime) -> None:
        if self._session_maker is None:
            return
        try:
            async with self._session_maker() as session:
                await self._upsert(session, thread_id, watermark)
        except SQLAlchemyError as exc:
            self._degrade(exc, operation="set")

    async def _upsert(
        self,
        session: AsyncSession,
        thread_id: str,
        watermark: datetime,
    ) -> None:
        existing = await self._load_row(session, thread_id)
        if existing is None:
            session.add(
                ReadCursor(
                    account_id=self.account_id,
                    thread_id=thread_id,
                    watermark=watermark,
                )
            )
            try:
                await session.commit()
                return
            except IntegrityError as exc:
                await session.rollback()
                if not is_unique_violation(exc):
                    raise
            # Another writer inserted the row first; fall through to the update path.
            existing = await self._load_row(session, thread_id)
            if existing is None:  # pragma: no cover
                return

        if ensure_utc(existing.watermark) >= watermark:
            return
        existing.watermark = watermark
        await session.commit()

    async def _load_row(self, session: AsyncSession, thread_id: str) -> ReadCursor | None:
        result = await session.execute(
            select(ReadCursor)
            .where(
                eq(ReadCursor.account_id, self.account_id),
                eq(ReadCursor.thread_id, thread_id),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()
