"""Maintenance script to delete one account's stored read state.

Removes every read cursor and seen activity id for the account, so the next
session on this device starts from a clean slate.

Usage:
    uv run python scripts/purge_account_state.py <account_id>

Environment overrides:
    ACTIVITY_PURGE_ACCOUNT_ID=<account_id>
    ACTIVITY_PURGE_BATCH_SIZE=500
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from db.session import AsyncSessionMaker  # noqa: E402
from services.notifications.maintenance import (  # noqa: E402
    PURGE_BATCH_SIZE,
    purge_account_state,
)

ACCOUNT_ID_ENV = "ACTIVITY_PURGE_ACCOUNT_ID"
BATCH_SIZE_ENV = "ACTIVITY_PURGE_BATCH_SIZE"


def _parse_positive_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be positive")
    return parsed


def _resolve_account_id(argv: list[str]) -> str:
    candidate = argv[0] if argv else os.getenv(ACCOUNT_ID_ENV, "")
    account_id = candidate.strip()
    if not account_id:
        raise ValueError(f"account id is required (argument or {ACCOUNT_ID_ENV})")
    return account_id


async def run(argv: list[str]) -> None:
    account_id = _resolve_account_id(argv)
    batch_size = _parse_positive_int(
        os.getenv(BATCH_SIZE_ENV),
        default=PURGE_BATCH_SIZE,
        label=BATCH_SIZE_ENV,
    )
    async with AsyncSessionMaker() as session:
        deleted = await purge_account_state(session, account_id, batch_size=batch_size)
    print(
        "Activity state purge complete: "
        f"account_id={account_id}, read_cursors={deleted['read_cursors']}, "
        f"seen_items={deleted['seen_items']}"
    )


def main() -> None:
    asyncio.run(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
