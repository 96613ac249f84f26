"""Activity source fetchers.

Each source is read independently and never raises: a failed read comes back
as a failed ``SourceResult`` with no items, so one broken source cannot block
the others or the poll loop. Payloads are validated here and nothing
downstream sees raw JSON.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from .client import ActivityApiClient, ActivityApiError
from .schemas import (
    Message,
    NotificationEvent,
    SessionIdentity,
    SyncRequest,
    Thread,
    ThreadParticipant,
)

DEFAULT_THREAD_FETCH_CONCURRENCY = 8
DEFAULT_COUNTERPART_LABEL = "Member"
EMPTY_THREAD_PLACEHOLDERS = ("no message yet", "no messages yet")
ModelT = TypeVar("ModelT", bound=BaseModel)
ItemT = TypeVar("ItemT")
AUTH_FAILURE_STATUSES = frozenset({401, 403})
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceResult(Generic[ItemT]):
    ok: bool
    items: list[ItemT] = field(default_factory=list)
    status_code: int | None = None

    @classmethod
    def failed(cls, status_code: int | None = None) -> "SourceResult[ItemT]":
        return cls(ok=False, items=[], status_code=status_code)

    @property
    def is_auth_failure(self) -> bool:
        return not self.ok and self.status_code in AUTH_FAILURE_STATUSES


@dataclass(frozen=True)
class ThreadPreview:
    thread_id: str
    last_message: Message | None
    counterpart_profile_id: str | None
    counterpart_display_name: str
    counterpart_avatar_url: str | None = None
    fetch_failed: bool = False

    @property
    def last_activity_at(self) -> datetime | None:
        if self.last_message is None:
            return None
        return self.last_message.created_at

    @property
    def preview_text(self) -> str | None:
        if self.last_message is None:
            return None
        content = self.last_message.content.strip()
        if not is_meaningful_message(content):
            return None
        return content


@dataclass(frozen=True)
class ActivitySnapshot:
    """The results of all three sources from one tick."""

    notifications: SourceResult[NotificationEvent]
    sync_requests: SourceResult[SyncRequest]
    thread_previews: SourceResult[ThreadPreview]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_session_rejected(self) -> bool:
        """True when every source was refused for authentication reasons."""
        return (
            self.notifications.is_auth_failure
            and self.sync_requests.is_auth_failure
            and self.thread_previews.is_auth_failure
        )


@runtime_checkable
class ActivitySource(Protocol):
    """Anything that can report the current activity for one session.

    Polling over HTTP is one implementation; a stream-backed source can
    satisfy the same contract without touching aggregation or toasts.
    """

    async def fetch_notifications(self) -> SourceResult[NotificationEvent]: ...

    async def fetch_sync_requests(self) -> SourceResult[SyncRequest]: ...

    async def fetch_thread_previews(self) -> SourceResult[ThreadPreview]: ...


def is_meaningful_message(content: str | None) -> bool:
    if not content:
        return False
    normalized = "".join(
        char for char in content.strip().lower() if char.isalnum() or char.isspace()
    ).strip()
    if not normalized:
        return False
    return not any(placeholder in normalized for placeholder in EMPTY_THREAD_PLACEHOLDERS)


def parse_items(model: type[ModelT], payload: Any, *, source: str) -> list[ModelT] | None:
    """Validate a list payload item by item; None when the payload is not a list."""
    if not isinstance(payload, list):
        logger.warning(
            "Activity payload is not a list",
            extra={"source": source, "payload_type": type(payload).__name__},
        )
        return None

    items: list[ModelT] = []
    dropped = 0
    for raw_item in payload:
        try:
            items.append(model.model_validate(raw_item))
        except ValidationError:
            dropped += 1
    if dropped:
        logger.info(
            "Dropped malformed activity items",
            extra={"source": source, "dropped": dropped, "kept": len(items)},
        )
    return items


def select_last_message(messages: list[Message]) -> Message | None:
    """Latest message by timestamp; ties go to the later position in the payload."""
    if not messages:
        return None
    _position, last = max(
        enumerate(messages),
        key=lambda pair: (pair[1].created_at, pair[0]),
    )
    return last


async def fetch_snapshot(source: ActivitySource) -> ActivitySnapshot:
    """Fetch every source concurrently and wait for all of them to settle."""
    notifications, sync_requests, thread_previews = await asyncio.gather(
        _guard(source.fetch_notifications(), source_name="notifications"),
        _guard(source.fetch_sync_requests(), source_name="sync_requests"),
        _guard(source.fetch_thread_previews(), source_name="threads"),
    )
    return ActivitySnapshot(
        notifications=notifications,
        sync_requests=sync_requests,
        thread_previews=thread_previews,
    )


async def _guard(fetch: Any, *, source_name: str) -> SourceResult[Any]:
    try:
        return await fetch
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.warning(
            "Activity source raised unexpectedly",
            extra={"source": source_name},
            exc_info=exc,
        )
        return SourceResult.failed()


class HttpActivitySource:
    """Polls the remote REST API on behalf of one signed-in identity."""

    def __init__(
        self,
        client: ActivityApiClient,
        identity: SessionIdentity,
        *,
        thread_fetch_concurrency: int = DEFAULT_THREAD_FETCH_CONCURRENCY,
    ) -> None:
        if thread_fetch_concurrency <= 0:
            raise ValueError("thread_fetch_concurrency must be positive")
        self.client = client
        self.identity = identity
        self._thread_fetch_limit = asyncio.Semaphore(thread_fetch_concurrency)
        self._profile_cache: dict[str, ThreadParticipant] = {}

    async def fetch_notifications(self) -> SourceResult[NotificationEvent]:
        try:
            payload = await self.client.list_notifications()
        except ActivityApiError as exc:
            _log_fetch_failure("notifications", exc)
            return SourceResult.failed(status_code=exc.status_code)
        notifications = parse_items(NotificationEvent, payload, source="notifications")
        if notifications is None:
            return SourceResult.failed()
        return SourceResult(ok=True, items=notifications)

    async def fetch_sync_requests(self) -> SourceResult[SyncRequest]:
        try:
            payload = await self.client.list_sync_requests()
        except ActivityApiError as exc:
            _log_fetch_failure("sync_requests", exc)
            return SourceResult.failed(status_code=exc.status_code)
        sync_requests = parse_items(SyncRequest, payload, source="sync_requests")
        if sync_requests is None:
            return SourceResult.failed()
        self_ids = self.identity.self_ids
        incoming_pending = [
            sync_request
            for sync_request in sync_requests
            if sync_request.is_pending and sync_request.target_id in self_ids
        ]
        return SourceResult(ok=True, items=incoming_pending)

    async def fetch_thread_previews(self) -> SourceResult[ThreadPreview]:
        try:
            payload = await self.client.list_threads()
        except ActivityApiError as exc:
            _log_fetch_failure("threads", exc)
            return SourceResult.failed(status_code=exc.status_code)
        threads = parse_items(Thread, payload, source="threads")
        if threads is None:
            return SourceResult.failed()

        previews = await asyncio.gather(
            *(self._load_thread_preview(thread) for thread in threads)
        )
        return SourceResult(ok=True, items=list(previews))

    async def _load_thread_preview(self, thread: Thread) -> ThreadPreview:
        async with self._thread_fetch_limit:
            try:
                payload = await self.client.list_messages(thread.id)
            except ActivityApiError as exc:
                logger.info(
                    "Thread preview unavailable",
                    extra={"thread_id": thread.id, "status_code": exc.status_code},
                )
                return _unknown_preview(thread.id)

        messages = parse_items(Message, payload, source="messages")
        if messages is None:
            return _unknown_preview(thread.id)

        counterpart = self._pick_counterpart(thread, messages)
        if counterpart is not None and counterpart.profile_id and not counterpart.display_name:
            resolved = await self._resolve_profile(counterpart.profile_id)
            if resolved is not None:
                counterpart = resolved

        counterpart_profile_id = counterpart.profile_id if counterpart is not None else None
        display_name = counterpart.display_name if counterpart is not None else None
        if not display_name:
            display_name = (
                f"User #{counterpart_profile_id}"
                if counterpart_profile_id
                else DEFAULT_COUNTERPART_LABEL
            )
        return ThreadPreview(
            thread_id=thread.id,
            last_message=select_last_message(messages),
            counterpart_profile_id=counterpart_profile_id,
            counterpart_display_name=display_name,
            counterpart_avatar_url=counterpart.avatar_url if counterpart is not None else None,
        )

    def _pick_counterpart(
        self,
        thread: Thread,
        messages: list[Message],
    ) -> ThreadParticipant | None:
        self_ids = self.identity.self_ids
        for participant in thread.participants:
            if participant.profile_id is None or participant.profile_id in self_ids:
                continue
            if participant.user_id is not None and participant.user_id in self_ids:
                continue
            return participant

        for message in messages:
            if message.sender_id is not None and message.sender_id not in self_ids:
                return ThreadParticipant(profile_id=message.sender_id)
        return None

    async def _resolve_profile(self, profile_id: str) -> ThreadParticipant | None:
        cached = self._profile_cache.get(profile_id)
        if cached is not None:
            return cached
        try:
            payload = await self.client.fetch_profile(profile_id)
            profile = ThreadParticipant.model_validate(payload)
        except (ActivityApiError, ValidationError):
            # Failed lookups are retried on the next tick.
            return None
        if profile.profile_id is None:
            profile = profile.model_copy(update={"profile_id": profile_id})
        self._profile_cache[profile_id] = profile
        return profile


def _unknown_preview(thread_id: str) -> ThreadPreview:
    return ThreadPreview(
        thread_id=thread_id,
        last_message=None,
        counterpart_profile_id=None,
        counterpart_display_name=f"Thread #{thread_id}",
        fetch_failed=True,
    )


def _log_fetch_failure(source: str, error: ActivityApiError) -> None:
    logger.warning(
        "Activity source fetch failed",
        extra={"source": source, "status_code": error.status_code},
        exc_info=error,
    )
