"""Activity identifier helpers."""

from __future__ import annotations

from typing import Literal

MAX_ITEM_ID_LENGTH = 191

NOTIFICATIONS_CATEGORY = "notifications"
SYNC_REQUESTS_CATEGORY = "sync_requests"
SeenCategory = Literal["notifications", "sync_requests"]
SEEN_CATEGORIES: tuple[SeenCategory, ...] = (
    NOTIFICATIONS_CATEGORY,
    SYNC_REQUESTS_CATEGORY,
)


def normalize_item_id(raw_value: int | str) -> str:
    return str(raw_value).strip()


def is_supported_category(category: str) -> bool:
    return category in SEEN_CATEGORIES


def build_notification_toast_id(notification_id: str) -> str:
    return f"notif-{notification_id}"


def build_sync_request_toast_id(sync_request_id: str) -> str:
    return f"sync-{sync_request_id}"


def normalize_item_ids(raw_ids: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen_ids: set[str] = set()
    normalized_ids: list[str] = []
    for raw_id in raw_ids:
        item_id = normalize_item_id(raw_id)
        if not item_id or len(item_id) > MAX_ITEM_ID_LENGTH:
            continue
        if item_id in seen_ids:
            continue
        seen_ids.add(item_id)
        normalized_ids.append(item_id)
    return normalized_ids
