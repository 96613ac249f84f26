"""Notification and unread-activity engine."""

from .aggregate import aggregate, is_thread_unread
from .client import ActivityApiClient, ActivityApiError
from .cursors import ReadCursorStore
from .engine import (
    EmailNotVerifiedError,
    EngineRegistry,
    NotificationEngineState,
    UnknownThreadError,
)
from .ids import NOTIFICATIONS_CATEGORY, SYNC_REQUESTS_CATEGORY
from .poller import NotificationPoller
from .schemas import (
    BadgeResponse,
    BadgeSnapshot,
    MarkReadResponse,
    Message,
    NotificationEvent,
    SendMessageRequest,
    SessionIdentity,
    SessionResponse,
    SyncRequest,
    ThreadPreviewResponse,
    Toast,
    ToastListResponse,
)
from .seen import SeenSetStore
from .sources import (
    ActivitySnapshot,
    ActivitySource,
    HttpActivitySource,
    SourceResult,
    ThreadPreview,
    fetch_snapshot,
)
from .toasts import ToastQueue

__all__ = [
    "NOTIFICATIONS_CATEGORY",
    "SYNC_REQUESTS_CATEGORY",
    "ActivityApiClient",
    "ActivityApiError",
    "ActivitySnapshot",
    "ActivitySource",
    "BadgeResponse",
    "BadgeSnapshot",
    "EmailNotVerifiedError",
    "EngineRegistry",
    "HttpActivitySource",
    "MarkReadResponse",
    "Message",
    "NotificationEngineState",
    "NotificationEvent",
    "NotificationPoller",
    "ReadCursorStore",
    "SeenSetStore",
    "SendMessageRequest",
    "SessionIdentity",
    "SessionResponse",
    "SourceResult",
    "SyncRequest",
    "ThreadPreview",
    "ThreadPreviewResponse",
    "Toast",
    "ToastListResponse",
    "ToastQueue",
    "UnknownThreadError",
    "aggregate",
    "fetch_snapshot",
    "is_thread_unread",
]
