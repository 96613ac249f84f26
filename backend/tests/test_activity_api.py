"""End-to-end tests for the activity API routes."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import ReadCursor

API_PREFIX = "/api/v1/activity"


def _notification(notification_id: int, **overrides) -> dict:
    payload = {
        "id": notification_id,
        "recipient_profile_id": "prof-1",
        "actor_profile_id": 5,
        "kind": "post_align",
        "created_at": "2026-10-19T09:00:00Z",
        "read_at": None,
    }
    payload.update(overrides)
    return payload


def _seed_thread(fake_api, thread_id: str = "12") -> None:
    fake_api.threads = [
        {
            "id": int(thread_id),
            "participants": [{"profile_id": "prof-1"}, {"id": 5, "display_name": "Ada"}],
        }
    ]
    fake_api.messages[thread_id] = [
        {
            "id": 1,
            "sender_profile_id": 5,
            "content": "Are we still on for Friday?",
            "created_at": "2026-10-19T09:10:00Z",
        }
    ]


async def _start_session(async_client: AsyncClient, auth_headers, wait_until_primed) -> dict:
    response = await async_client.post(f"{API_PREFIX}/session", headers=auth_headers)
    assert response.status_code == 200
    await wait_until_primed()
    return response.json()


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_session_routes_require_bearer_token(async_client: AsyncClient) -> None:
    response = await async_client.post(f"{API_PREFIX}/session")
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing bearer token"


@pytest.mark.asyncio
async def test_badge_requires_started_session(
    async_client: AsyncClient,
    auth_headers,
) -> None:
    response = await async_client.get(f"{API_PREFIX}/badge", headers=auth_headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Activity session not started"


@pytest.mark.asyncio
async def test_unverified_account_cannot_start_session(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    engine_registry,
) -> None:
    fake_api.accounts["token-1"]["email_verified"] = False

    response = await async_client.post(f"{API_PREFIX}/session", headers=auth_headers)

    assert response.status_code == 403
    assert response.json()["detail"] == "Email not verified"
    assert len(engine_registry) == 0
    assert ("GET", "/ether/notifications") not in fake_api.requests


@pytest.mark.asyncio
async def test_rejected_token_maps_to_unauthorized(async_client: AsyncClient) -> None:
    response = await async_client.post(
        f"{API_PREFIX}/session",
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_unavailable_upstream_maps_to_bad_gateway(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
) -> None:
    fake_api.failing_paths.add("/auth/me")

    response = await async_client.post(f"{API_PREFIX}/session", headers=auth_headers)

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_session_start_is_idempotent(
    async_client: AsyncClient,
    auth_headers,
    engine_registry,
    wait_until_primed,
) -> None:
    first = await _start_session(async_client, auth_headers, wait_until_primed)
    second = await async_client.post(f"{API_PREFIX}/session", headers=auth_headers)

    assert first == {"account_id": "acct-1", "profile_id": "prof-1", "state": "priming"}
    assert second.json()["state"] == "polling"
    assert len(engine_registry) == 1


@pytest.mark.asyncio
async def test_new_notification_after_priming_raises_one_toast(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
) -> None:
    fake_api.notifications = [_notification(1), _notification(2), _notification(3)]
    await _start_session(async_client, auth_headers, wait_until_primed)

    toasts = await async_client.get(f"{API_PREFIX}/toasts", headers=auth_headers)
    assert toasts.json() == {"toasts": []}
    badge = await async_client.get(f"{API_PREFIX}/badge", headers=auth_headers)
    assert badge.json()["badge"] == 3
    assert badge.json()["state"] == "polling"

    fake_api.notifications.insert(0, _notification(99, actor_display_name="Ada"))
    refreshed = await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)
    assert refreshed.json()["badge"] == 4
    await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)

    toasts = await async_client.get(f"{API_PREFIX}/toasts", headers=auth_headers)
    [toast] = toasts.json()["toasts"]
    assert toast["id"] == "notif-99"
    assert toast["title"] == "Ada"
    assert toast["detail"] == "Aligned with your post"

    dismissed = await async_client.delete(
        f"{API_PREFIX}/toasts/notif-99", headers=auth_headers
    )
    assert dismissed.status_code == 204
    missing = await async_client.delete(
        f"{API_PREFIX}/toasts/notif-99", headers=auth_headers
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_pending_sync_request_counts_and_toasts(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
) -> None:
    await _start_session(async_client, auth_headers, wait_until_primed)

    fake_api.sync_requests = [
        {
            "id": 7,
            "requester_profile_id": 8,
            "target_profile_id": "prof-1",
            "status": "pending",
            "created_at": "2026-10-19T09:00:00Z",
        }
    ]
    refreshed = await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)

    assert refreshed.json()["pending_sync_requests"] == 1
    toasts = await async_client.get(f"{API_PREFIX}/toasts", headers=auth_headers)
    assert [toast["id"] for toast in toasts.json()["toasts"]] == ["sync-7"]
    assert toasts.json()["toasts"][0]["title"] == "Profile #8"


@pytest.mark.asyncio
async def test_opening_thread_clears_it_and_persists_cursor(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
    db_session: AsyncSession,
) -> None:
    _seed_thread(fake_api)
    await _start_session(async_client, auth_headers, wait_until_primed)

    threads = await async_client.get(f"{API_PREFIX}/threads", headers=auth_headers)
    [thread] = threads.json()
    assert thread["thread_id"] == "12"
    assert thread["counterpart_display_name"] == "Ada"
    assert thread["message"] == "Are we still on for Friday?"
    assert thread["unread"] is True

    opened = await async_client.post(f"{API_PREFIX}/threads/12/open", headers=auth_headers)
    assert opened.status_code == 200
    assert opened.json()["unread_threads"] == 0
    assert opened.json()["badge"] == 0

    refreshed = await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)
    assert refreshed.json()["unread_threads"] == 0

    result = await db_session.execute(select(ReadCursor))
    [cursor] = result.scalars().all()
    assert cursor.account_id == "acct-1"
    assert cursor.thread_id == "12"


@pytest.mark.asyncio
async def test_opening_unknown_thread_is_not_found(
    async_client: AsyncClient,
    auth_headers,
    wait_until_primed,
) -> None:
    await _start_session(async_client, auth_headers, wait_until_primed)

    response = await async_client.post(f"{API_PREFIX}/threads/999/open", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "Thread not found"


@pytest.mark.asyncio
async def test_sending_a_message_keeps_thread_read(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
) -> None:
    _seed_thread(fake_api)
    await _start_session(async_client, auth_headers, wait_until_primed)

    sent = await async_client.post(
        f"{API_PREFIX}/threads/12/messages",
        headers=auth_headers,
        json={"content": "See you there"},
    )

    assert sent.status_code == 200
    assert sent.json()["unread_threads"] == 0
    assert fake_api.messages["12"][-1]["content"] == "See you there"
    threads = await async_client.get(f"{API_PREFIX}/threads", headers=auth_headers)
    assert threads.json()[0]["message"] == "See you there"
    assert threads.json()[0]["unread"] is False

    empty = await async_client.post(
        f"{API_PREFIX}/threads/12/messages",
        headers=auth_headers,
        json={"content": ""},
    )
    assert empty.status_code == 422


@pytest.mark.asyncio
async def test_mark_all_notifications_read(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
) -> None:
    fake_api.notifications = [_notification(1), _notification(2)]
    await _start_session(async_client, auth_headers, wait_until_primed)

    response = await async_client.post(
        f"{API_PREFIX}/notifications/mark-read", headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json() == {"marked_count": 2, "badge": 0}
    assert ("POST", "/ether/notifications/mark-read") in fake_api.requests


@pytest.mark.asyncio
async def test_delete_notification(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    wait_until_primed,
) -> None:
    fake_api.notifications = [_notification(1), _notification(2)]
    await _start_session(async_client, auth_headers, wait_until_primed)

    deleted = await async_client.delete(f"{API_PREFIX}/notifications/1", headers=auth_headers)
    assert deleted.status_code == 200
    assert deleted.json()["unread_notifications"] == 1

    missing = await async_client.delete(
        f"{API_PREFIX}/notifications/1", headers=auth_headers
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_end_session_stops_polling(
    async_client: AsyncClient,
    auth_headers,
    engine_registry,
    wait_until_primed,
) -> None:
    await _start_session(async_client, auth_headers, wait_until_primed)
    state = engine_registry.get("token-1")

    ended = await async_client.delete(f"{API_PREFIX}/session", headers=auth_headers)

    assert ended.status_code == 204
    assert len(engine_registry) == 0
    assert state is not None
    assert state.poller.is_running is False
    assert state.state == "idle"
    badge = await async_client.get(f"{API_PREFIX}/badge", headers=auth_headers)
    assert badge.status_code == 401


def test_app_keeps_the_registry_it_is_given(app, engine_registry) -> None:
    assert len(engine_registry) == 0
    assert app.state.engine_registry is engine_registry


@pytest.mark.asyncio
async def test_revoked_token_ends_the_session(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    engine_registry,
    wait_until_primed,
) -> None:
    await _start_session(async_client, auth_headers, wait_until_primed)
    state = engine_registry.get("token-1")
    assert state is not None

    fake_api.accounts.clear()
    refreshed = await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)

    assert refreshed.status_code == 200
    assert refreshed.json()["state"] == "idle"
    assert refreshed.json()["badge"] == 0
    assert len(engine_registry) == 0
    assert state.poller.is_running is False
    badge = await async_client.get(f"{API_PREFIX}/badge", headers=auth_headers)
    assert badge.status_code == 401


@pytest.mark.asyncio
async def test_restarting_after_email_unverified_tears_session_down(
    async_client: AsyncClient,
    auth_headers,
    fake_api,
    engine_registry,
    wait_until_primed,
) -> None:
    await _start_session(async_client, auth_headers, wait_until_primed)
    state = engine_registry.get("token-1")
    assert state is not None

    fake_api.accounts["token-1"]["email_verified"] = False
    restarted = await async_client.post(f"{API_PREFIX}/session", headers=auth_headers)

    assert restarted.status_code == 403
    assert len(engine_registry) == 0
    assert state.state == "idle"
    assert state.poller.is_running is False
    refreshed = await async_client.post(f"{API_PREFIX}/refresh", headers=auth_headers)
    assert refreshed.status_code == 401
