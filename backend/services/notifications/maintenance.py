"""Bulk maintenance of stored read state."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, cast

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import ReadCursor, SeenItem

from .common import eq, in_

PURGE_BATCH_SIZE = 500
logger = logging.getLogger(__name__)


async def _delete_batch(
    session: AsyncSession,
    model: Any,
    account_id: str,
    *,
    batch_size: int,
) -> int:
    id_column = cast(ColumnElement[int], model.id)
    batch_ids = (
        select(id_column)
        .where(eq(model.account_id, account_id))
        .limit(batch_size)
    )
    result = await session.execute(delete(model).where(in_(model.id, batch_ids)))
    deleted_rows = int(cast(Any, result).rowcount or 0)
    if deleted_rows > 0:
        await session.commit()
    return deleted_rows


async def purge_account_state(
    session: AsyncSession,
    account_id: str,
    *,
    batch_size: int = PURGE_BATCH_SIZE,
) -> dict[str, int]:
    """Delete every read cursor and seen id stored for one account."""
    normalized_account_id = account_id.strip()
    if not normalized_account_id:
        raise ValueError("account_id must not be empty")
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    started_at = perf_counter()
    deleted: dict[str, int] = {}
    for label, model in (("read_cursors", ReadCursor), ("seen_items", SeenItem)):
        total_deleted = 0
        while True:
            deleted_rows = await _delete_batch(
                session,
                model,
                normalized_account_id,
                batch_size=batch_size,
            )
            if deleted_rows <= 0:
                break
            total_deleted += deleted_rows
        deleted[label] = total_deleted

    elapsed_ms = int((perf_counter() - started_at) * 1000)
    logger.info(
        "Purged stored activity state",
        extra={"account_id": normalized_account_id, "elapsed_ms": elapsed_ms, **deleted},
    )
    return deleted
