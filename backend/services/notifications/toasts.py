"""Ephemeral toast queue and toast copy."""

from __future__ import annotations

import asyncio
import logging

from .ids import build_notification_toast_id, build_sync_request_toast_id
from .schemas import NotificationEvent, SyncRequest, Toast

DEFAULT_TOAST_TTL_SECONDS = 6.0
DEFAULT_ACTOR_TITLE = "Member"
SYNC_REQUEST_DETAIL = "Sent a sync request"
NOTIFICATION_DETAILS: dict[str, str] = {
    "post_align": "Aligned with your post",
    "post_comment": "Commented on your post",
    "comment_align": "Aligned with a comment on your post",
    "sync_approved": "Accepted your sync request",
}
FALLBACK_NOTIFICATION_DETAIL = "New activity"
logger = logging.getLogger(__name__)


def build_notification_toast(notification: NotificationEvent) -> Toast:
    return Toast(
        id=build_notification_toast_id(notification.id),
        title=notification.actor_display_name or DEFAULT_ACTOR_TITLE,
        detail=NOTIFICATION_DETAILS.get(notification.kind, FALLBACK_NOTIFICATION_DETAIL),
        avatar_url=notification.actor_avatar_url,
        subject_profile_id=notification.actor_id,
        created_at=notification.created_at,
    )


def build_sync_request_toast(sync_request: SyncRequest) -> Toast:
    return Toast(
        id=build_sync_request_toast_id(sync_request.id),
        title=sync_request.requester_display_name
        or f"Profile #{sync_request.requester_id}",
        detail=SYNC_REQUEST_DETAIL,
        avatar_url=sync_request.requester_avatar_url,
        subject_profile_id=sync_request.requester_id,
        created_at=sync_request.created_at,
    )


class ToastQueue:
    """In-memory toasts that expire after a fixed TTL unless dismissed first.

    No de-duplication happens here; callers only push items that are new.
    Must be used from within a running event loop.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TOAST_TTL_SECONDS) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._toasts: list[Toast] = []
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._toasts)

    def items(self) -> list[Toast]:
        return list(self._toasts)

    def push(self, toast: Toast) -> None:
        self._toasts.append(toast)
        previous_timer = self._timers.pop(toast.id, None)
        if previous_timer is not None:
            previous_timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[toast.id] = loop.call_later(self.ttl_seconds, self._expire, toast.id)

    def dismiss(self, toast_id: str) -> bool:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        return self._remove(toast_id)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts.clear()

    def _expire(self, toast_id: str) -> None:
        self._timers.pop(toast_id, None)
        if self._remove(toast_id):
            logger.debug("Toast expired", extra={"toast_id": toast_id})

    def _remove(self, toast_id: str) -> bool:
        remaining = [toast for toast in self._toasts if toast.id != toast_id]
        removed = len(remaining) != len(self._toasts)
        self._toasts = remaining
        return removed
