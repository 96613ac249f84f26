"""Unread badge aggregation."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from .schemas import BadgeSnapshot, SyncRequest, ThreadUnreadFlag
from .sources import ActivitySnapshot, ThreadPreview


def is_thread_unread(
    preview: ThreadPreview,
    self_ids: frozenset[str],
    cursor: datetime | None,
) -> bool:
    last_message = preview.last_message
    if last_message is None:
        return False
    if last_message.sender_id is not None and last_message.sender_id in self_ids:
        return False
    if cursor is None:
        return True
    return last_message.created_at > cursor


def is_incoming_pending(sync_request: SyncRequest, self_ids: frozenset[str]) -> bool:
    return sync_request.is_pending and sync_request.target_id in self_ids


def aggregate(
    snapshot: ActivitySnapshot,
    cursors: Mapping[str, datetime],
    self_ids: frozenset[str],
) -> BadgeSnapshot:
    """Recompute the badge from one snapshot; failed sources contribute zero."""
    unread_notifications = sum(
        1 for notification in snapshot.notifications.items if notification.is_unread
    )
    pending_sync_requests = sum(
        1
        for sync_request in snapshot.sync_requests.items
        if is_incoming_pending(sync_request, self_ids)
    )
    thread_flags = [
        ThreadUnreadFlag(
            thread_id=preview.thread_id,
            unread=is_thread_unread(preview, self_ids, cursors.get(preview.thread_id)),
        )
        for preview in snapshot.thread_previews.items
    ]
    unread_threads = sum(1 for flag in thread_flags if flag.unread)
    return BadgeSnapshot(
        badge=unread_notifications + pending_sync_requests + unread_threads,
        unread_notifications=unread_notifications,
        pending_sync_requests=pending_sync_requests,
        unread_threads=unread_threads,
        threads=thread_flags,
    )
