"""HTTP client for the remote activity API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from core import settings

ME_PATH = "/auth/me"
ME_PROFILE_PATH = "/ether/me-profile"
NOTIFICATIONS_PATH = "/ether/notifications"
NOTIFICATIONS_MARK_READ_PATH = "/ether/notifications/mark-read"
SYNC_REQUESTS_PATH = "/ether/sync/requests"
THREADS_PATH = "/ether/threads"
PROFILES_PATH = "/ether/profiles"


class ActivityApiError(Exception):
    """Raised when the remote activity API cannot serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _segment(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("path identifier must not be empty")
    return quote(normalized, safe="")


class ActivityApiClient:
    """Thin bearer-authenticated wrapper over the remote REST API.

    Responses are returned as decoded JSON; validation happens in the
    source layer. Every transport or status failure surfaces as
    ``ActivityApiError``.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized_token = access_token.strip()
        if not normalized_token:
            raise ValueError("access_token must not be empty")

        client_kwargs: dict[str, Any] = {}
        timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.activity_api_timeout_seconds
        )
        if timeout is not None:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.activity_api_base_url,
            headers={"Authorization": f"Bearer {normalized_token}"},
            **client_kwargs,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ActivityApiError(f"{method} {path} failed: {exc}") from exc

        if response.is_error:
            raise ActivityApiError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ActivityApiError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
            ) from exc

    async def fetch_me(self) -> Any:
        return await self._request("GET", ME_PATH)

    async def fetch_me_profile(self) -> Any:
        return await self._request("GET", ME_PROFILE_PATH)

    async def list_notifications(self) -> Any:
        return await self._request("GET", NOTIFICATIONS_PATH)

    async def mark_notifications_read(self) -> None:
        await self._request("POST", NOTIFICATIONS_MARK_READ_PATH)

    async def delete_notification(self, notification_id: str) -> None:
        await self._request("DELETE", f"{NOTIFICATIONS_PATH}/{_segment(notification_id)}")

    async def list_sync_requests(self) -> Any:
        return await self._request("GET", SYNC_REQUESTS_PATH)

    async def list_threads(self) -> Any:
        return await self._request("GET", THREADS_PATH)

    async def list_messages(self, thread_id: str) -> Any:
        return await self._request("GET", f"{THREADS_PATH}/{_segment(thread_id)}/messages")

    async def send_message(self, thread_id: str, content: str) -> Any:
        return await self._request(
            "POST",
            f"{THREADS_PATH}/{_segment(thread_id)}/messages",
            json={"content": content},
        )

    async def fetch_profile(self, profile_id: str) -> Any:
        return await self._request("GET", f"{PROFILES_PATH}/{_segment(profile_id)}")
