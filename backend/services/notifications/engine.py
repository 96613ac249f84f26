"""Per-session activity engine state and its registry."""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import settings

from .aggregate import is_thread_unread
from .client import ActivityApiClient, ActivityApiError
from .cursors import ReadCursorStore
from .ids import normalize_item_id
from .poller import NotificationPoller
from .schemas import (
    BadgeSnapshot,
    MeProfileResponse,
    MeResponse,
    Message,
    NotificationEvent,
    PollerState,
    SessionIdentity,
)
from .seen import SeenSetStore
from .sources import (
    AUTH_FAILURE_STATUSES,
    ActivitySnapshot,
    ActivitySource,
    HttpActivitySource,
    SourceResult,
    ThreadPreview,
)
from .toasts import ToastQueue

ClientFactory = Callable[[str], ActivityApiClient]
InvalidationHandler = Callable[["NotificationEngineState"], Awaitable[None]]
_NO_ACTIVITY = datetime.min.replace(tzinfo=timezone.utc)
logger = logging.getLogger(__name__)


class EmailNotVerifiedError(Exception):
    """Raised when a session is started for an account without a verified email."""


class UnknownThreadError(LookupError):
    """Raised when a thread is not part of the latest activity snapshot."""


def fingerprint_token(access_token: str) -> str:
    return hashlib.sha256(access_token.strip().encode("utf-8")).hexdigest()


async def resolve_identity(client: ActivityApiClient) -> SessionIdentity:
    try:
        me = MeResponse.model_validate(await client.fetch_me())
    except ValidationError as exc:
        raise ActivityApiError("identity payload is malformed") from exc

    profile_id: str | None = None
    if me.email_verified:
        try:
            profile_id = MeProfileResponse.model_validate(
                await client.fetch_me_profile()
            ).id
        except (ActivityApiError, ValidationError) as exc:
            logger.warning(
                "Profile lookup failed; thread senders are matched by account id only",
                extra={"account_id": me.id},
                exc_info=exc,
            )
    return SessionIdentity(
        account_id=me.id,
        profile_id=profile_id,
        email_verified=me.email_verified,
    )


class NotificationEngineState:
    """Everything one signed-in session needs: stores, source, poller, toasts.

    Built at session start and handed to the API layer; ``init`` hydrates the
    stores and starts polling, ``teardown`` stops polling and releases the
    HTTP client. Local state is namespaced by the session's account id.
    """

    def __init__(
        self,
        *,
        identity: SessionIdentity,
        client: ActivityApiClient,
        session_maker: async_sessionmaker[AsyncSession] | None,
        source: ActivitySource | None = None,
        poll_interval_seconds: float | None = None,
        toast_ttl_seconds: float | None = None,
        thread_fetch_concurrency: int | None = None,
        on_invalidated: InvalidationHandler | None = None,
    ) -> None:
        self.identity = identity
        self.client = client
        self.on_invalidated = on_invalidated
        self.cursors = ReadCursorStore(session_maker, identity.account_id)
        self.seen = SeenSetStore(session_maker, identity.account_id)
        self.toasts = ToastQueue(
            toast_ttl_seconds
            if toast_ttl_seconds is not None
            else settings.activity_toast_ttl_seconds
        )
        self.source = source or HttpActivitySource(
            client,
            identity,
            thread_fetch_concurrency=thread_fetch_concurrency
            or settings.activity_thread_fetch_concurrency,
        )
        self.poller = NotificationPoller(
            source=self.source,
            seen=self.seen,
            cursors=self.cursors,
            toasts=self.toasts,
            self_ids=identity.self_ids,
            interval_seconds=poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.activity_poll_interval_seconds,
            on_session_rejected=self._handle_session_rejected,
        )

    @property
    def state(self) -> PollerState:
        return self.poller.state

    @property
    def badge(self) -> BadgeSnapshot:
        return self.poller.badge

    async def init(self) -> None:
        await self.cursors.load()
        await self.seen.load()
        if self.identity.is_eligible:
            self.poller.start()

    async def teardown(self) -> None:
        await self.poller.stop()
        self.toasts.clear()
        await self.client.aclose()

    async def _handle_session_rejected(self) -> None:
        if self.on_invalidated is not None:
            await self.on_invalidated(self)
        else:
            await self.teardown()

    def thread_previews(self) -> list[tuple[ThreadPreview, bool]]:
        """Latest previews with their unread flag, most recent activity first."""
        snapshot = self.poller.snapshot
        if snapshot is None:
            return []
        cursors = self.cursors.snapshot()
        self_ids = self.identity.self_ids
        previews = sorted(
            snapshot.thread_previews.items,
            key=lambda preview: preview.last_activity_at or _NO_ACTIVITY,
            reverse=True,
        )
        return [
            (preview, is_thread_unread(preview, self_ids, cursors.get(preview.thread_id)))
            for preview in previews
        ]

    async def open_thread(self, thread_id: str) -> BadgeSnapshot:
        preview = self._find_preview(thread_id)
        if preview.last_message is not None:
            await self.cursors.set(preview.thread_id, preview.last_message.created_at)
        return self.poller.recompute()

    async def mark_all_notifications_read(self) -> int:
        await self.client.mark_notifications_read()
        snapshot = self.poller.snapshot
        if snapshot is None:
            return 0

        read_at = datetime.now(timezone.utc)
        marked_count = 0
        notifications: list[NotificationEvent] = []
        for notification in snapshot.notifications.items:
            if notification.is_unread:
                marked_count += 1
                notification = notification.model_copy(update={"read_at": read_at})
            notifications.append(notification)
        self.poller.replace_snapshot(
            dataclasses.replace(
                snapshot,
                notifications=SourceResult(ok=snapshot.notifications.ok, items=notifications),
            )
        )
        return marked_count

    async def delete_notification(self, notification_id: str) -> BadgeSnapshot:
        normalized_notification_id = normalize_item_id(notification_id)
        if not normalized_notification_id:
            raise ValueError("notification_id must not be empty")
        await self.client.delete_notification(normalized_notification_id)

        snapshot = self.poller.snapshot
        if snapshot is None:
            return self.badge
        remaining = [
            notification
            for notification in snapshot.notifications.items
            if notification.id != normalized_notification_id
        ]
        return self.poller.replace_snapshot(
            dataclasses.replace(
                snapshot,
                notifications=SourceResult(ok=snapshot.notifications.ok, items=remaining),
            )
        )

    async def send_message(self, thread_id: str, content: str) -> Message | None:
        preview = self._find_preview(thread_id)
        normalized_content = content.strip()
        if not normalized_content:
            raise ValueError("content must not be empty")

        payload = await self.client.send_message(preview.thread_id, normalized_content)
        try:
            message = Message.model_validate(payload)
        except ValidationError:
            logger.info(
                "Sent message response was malformed; refreshing activity",
                extra={"thread_id": preview.thread_id},
            )
            await self.poller.poll_now()
            return None

        await self.cursors.set(preview.thread_id, message.created_at)
        snapshot = self.poller.snapshot
        if snapshot is not None:
            self.poller.replace_snapshot(
                _with_last_message(snapshot, preview.thread_id, message)
            )
        return message

    def _find_preview(self, thread_id: str) -> ThreadPreview:
        normalized_thread_id = normalize_item_id(thread_id)
        snapshot = self.poller.snapshot
        if snapshot is not None:
            for preview in snapshot.thread_previews.items:
                if preview.thread_id == normalized_thread_id:
                    return preview
        raise UnknownThreadError(normalized_thread_id)


def _with_last_message(
    snapshot: ActivitySnapshot,
    thread_id: str,
    message: Message,
) -> ActivitySnapshot:
    previews = [
        dataclasses.replace(preview, last_message=message, fetch_failed=False)
        if preview.thread_id == thread_id
        else preview
        for preview in snapshot.thread_previews.items
    ]
    return dataclasses.replace(
        snapshot,
        thread_previews=SourceResult(ok=snapshot.thread_previews.ok, items=previews),
    )


def _default_client_factory(access_token: str) -> ActivityApiClient:
    return ActivityApiClient(access_token)


class EngineRegistry:
    """Live engine states keyed by a fingerprint of the session's access token."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None,
        *,
        client_factory: ClientFactory | None = None,
        poll_interval_seconds: float | None = None,
        toast_ttl_seconds: float | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.client_factory = client_factory or _default_client_factory
        self.poll_interval_seconds = poll_interval_seconds
        self.toast_ttl_seconds = toast_ttl_seconds
        self._states: dict[str, NotificationEngineState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, access_token: str) -> NotificationEngineState | None:
        return self._states.get(fingerprint_token(access_token))

    async def start_session(self, access_token: str) -> NotificationEngineState:
        key = fingerprint_token(access_token)
        existing = self._states.get(key)
        if existing is not None:
            return await self._revalidate(key, existing)

        client = self.client_factory(access_token)
        try:
            identity = await resolve_identity(client)
        except Exception:
            await client.aclose()
            raise
        if not identity.is_eligible:
            await client.aclose()
            raise EmailNotVerifiedError(identity.account_id)

        state = NotificationEngineState(
            identity=identity,
            client=client,
            session_maker=self.session_maker,
            poll_interval_seconds=self.poll_interval_seconds,
            toast_ttl_seconds=self.toast_ttl_seconds,
            on_invalidated=functools.partial(self._invalidate, key),
        )
        await state.init()
        # A concurrent start for the same token may have finished first.
        winner = self._states.setdefault(key, state)
        if winner is not state:
            await state.teardown()
            return winner
        logger.info(
            "Activity session started",
            extra={"account_id": identity.account_id},
        )
        return state

    async def _revalidate(
        self,
        key: str,
        state: NotificationEngineState,
    ) -> NotificationEngineState:
        """Re-check a live session; tear it down if it is no longer eligible."""
        try:
            identity = await resolve_identity(state.client)
        except ActivityApiError as exc:
            if exc.status_code in AUTH_FAILURE_STATUSES:
                await self._invalidate(key, state)
            raise
        if not identity.is_eligible:
            await self._invalidate(key, state)
            raise EmailNotVerifiedError(identity.account_id)
        return state

    async def _invalidate(self, key: str, state: NotificationEngineState) -> None:
        if self._states.get(key) is state:
            del self._states[key]
        await state.teardown()
        logger.info(
            "Activity session invalidated",
            extra={"account_id": state.identity.account_id},
        )

    async def end_session(self, access_token: str) -> bool:
        state = self._states.pop(fingerprint_token(access_token), None)
        if state is None:
            return False
        await state.teardown()
        logger.info(
            "Activity session ended",
            extra={"account_id": state.identity.account_id},
        )
        return True

    async def shutdown(self) -> None:
        states = list(self._states.values())
        self._states.clear()
        for state in states:
            await state.teardown()
