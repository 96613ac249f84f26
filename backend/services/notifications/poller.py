"""Fixed-interval activity poller.

One loop per signed-in session. The first tick primes the seen sets without
emitting toasts; every later tick diffs against them, toasts what is new and
republishes the badge. A generation counter ties each tick to the run that
started it, and a tick counter keeps an older tick from overwriting a newer
one, so late responses after a stop or restart are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from .aggregate import aggregate
from .cursors import ReadCursorStore
from .ids import NOTIFICATIONS_CATEGORY, SYNC_REQUESTS_CATEGORY
from .schemas import BadgeSnapshot, PollerState
from .seen import SeenSetStore
from .sources import ActivitySnapshot, ActivitySource, fetch_snapshot
from .toasts import ToastQueue, build_notification_toast, build_sync_request_toast

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
RejectionHandler = Callable[[], Awaitable[None]]
logger = logging.getLogger(__name__)


class NotificationPoller:
    def __init__(
        self,
        *,
        source: ActivitySource,
        seen: SeenSetStore,
        cursors: ReadCursorStore,
        toasts: ToastQueue,
        self_ids: frozenset[str],
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_session_rejected: RejectionHandler | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.source = source
        self.seen = seen
        self.cursors = cursors
        self.toasts = toasts
        self.self_ids = self_ids
        self.interval_seconds = interval_seconds
        self.on_session_rejected = on_session_rejected

        self.state: PollerState = "idle"
        self.snapshot: ActivitySnapshot | None = None
        self.badge = BadgeSnapshot.empty()
        self.badge_updated_at: datetime | None = None

        self._generation = 0
        self._tick_counter = 0
        self._last_applied_tick = 0
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._generation += 1
        self.state = "priming"
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run(self._generation, self._stop_event),
            name=f"activity-poller-{self.seen.account_id}",
        )
        logger.info(
            "Activity poller started",
            extra={"account_id": self.seen.account_id, "generation": self._generation},
        )

    async def stop(self) -> None:
        """Halt the loop and wait for it to exit.

        Stopping is cooperative: a tick already in flight runs to completion,
        but the generation bump makes it discard its results.
        """
        if self.state == "idle" and self._task is None:
            return
        self._halt()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await task
        logger.info(
            "Activity poller stopped",
            extra={"account_id": self.seen.account_id},
        )

    async def poll_now(self) -> BadgeSnapshot:
        """Run one out-of-band tick for the current run and return the badge."""
        if self.state != "idle":
            await self._tick(self._generation)
        return self.badge

    def recompute(self) -> BadgeSnapshot:
        """Re-aggregate the last applied snapshot against the current cursors."""
        if self.snapshot is not None:
            self._publish(
                aggregate(self.snapshot, self.cursors.snapshot(), self.self_ids)
            )
        return self.badge

    def replace_snapshot(self, snapshot: ActivitySnapshot) -> BadgeSnapshot:
        """Swap in a locally adjusted snapshot (optimistic writes) and re-aggregate.

        Ticks that started before the swap fetched pre-edit data, so they are
        retired and only later ticks may replace this snapshot.
        """
        self._last_applied_tick = self._tick_counter
        self.snapshot = snapshot
        return self.recompute()

    def _halt(self) -> None:
        self._generation += 1
        self.state = "idle"
        if self._stop_event is not None:
            self._stop_event.set()

    async def _run(self, generation: int, stop_event: asyncio.Event) -> None:
        while self._is_current(generation):
            await self._tick(generation)
            if not self._is_current(generation):
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _tick(self, generation: int) -> bool:
        self._tick_counter += 1
        tick_id = self._tick_counter
        try:
            await self.cursors.load()
            snapshot = await fetch_snapshot(self.source)
            if not self._accepts(generation, tick_id):
                logger.debug(
                    "Discarded stale activity tick",
                    extra={"account_id": self.seen.account_id, "tick": tick_id},
                )
                return False

            if snapshot.is_session_rejected:
                await self._end_rejected_session()
                return False

            # Publish before any further await so a newer tick cannot be overwritten.
            self._last_applied_tick = tick_id
            self.snapshot = snapshot
            self._publish(aggregate(snapshot, self.cursors.snapshot(), self.self_ids))
            if self.state == "priming":
                self.state = "polling"

            await self._surface_new_items(snapshot, generation)
        except Exception as exc:
            logger.warning(
                "Activity tick failed",
                extra={"account_id": self.seen.account_id, "tick": tick_id},
                exc_info=exc,
            )
            return False
        return True

    async def _end_rejected_session(self) -> None:
        logger.warning(
            "Activity session rejected upstream; polling stopped",
            extra={"account_id": self.seen.account_id},
        )
        self._halt()
        self.snapshot = None
        self._publish(BadgeSnapshot.empty())
        if self.on_session_rejected is not None:
            await self.on_session_rejected()

    async def _surface_new_items(self, snapshot: ActivitySnapshot, generation: int) -> None:
        if snapshot.notifications.ok:
            notifications_by_id = {
                notification.id: notification
                for notification in snapshot.notifications.items
            }
            fresh_ids = await self._diff_or_prime(
                NOTIFICATIONS_CATEGORY, list(notifications_by_id)
            )
            if not self._is_current(generation):
                return
            for notification_id in fresh_ids:
                self.toasts.push(build_notification_toast(notifications_by_id[notification_id]))

        if snapshot.sync_requests.ok:
            sync_requests_by_id = {
                sync_request.id: sync_request
                for sync_request in snapshot.sync_requests.items
            }
            fresh_ids = await self._diff_or_prime(
                SYNC_REQUESTS_CATEGORY, list(sync_requests_by_id)
            )
            if not self._is_current(generation):
                return
            for sync_request_id in fresh_ids:
                self.toasts.push(build_sync_request_toast(sync_requests_by_id[sync_request_id]))

    async def _diff_or_prime(self, category: str, ids: list[str]) -> list[str]:
        if not self.seen.is_primed(category):
            await self.seen.mark_primed(category, ids)
            logger.info(
                "Primed activity category",
                extra={
                    "account_id": self.seen.account_id,
                    "category": category,
                    "items": len(ids),
                },
            )
            return []
        return await self.seen.diff_and_mark(category, ids)

    def _publish(self, badge: BadgeSnapshot) -> None:
        self.badge = badge
        self.badge_updated_at = datetime.now(timezone.utc)

    def _accepts(self, generation: int, tick_id: int) -> bool:
        return self._is_current(generation) and tick_id > self._last_applied_tick

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state != "idle"
