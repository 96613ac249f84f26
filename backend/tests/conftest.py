"""Pytest fixtures for the activity service backend."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app import create_app
from core.config import settings
from services.notifications import (
    NOTIFICATIONS_CATEGORY,
    SYNC_REQUESTS_CATEGORY,
    ActivityApiClient,
    EngineRegistry,
)

UPSTREAM_BASE_URL = "http://upstream.test"
ACCESS_TOKEN = "token-1"
ACCOUNT_ID = "acct-1"
PROFILE_ID = "prof-1"


def _run_alembic_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the given database URL."""
    backend_dir = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))

    original_database_url = settings.database_url
    try:
        settings.database_url = database_url
        command.upgrade(alembic_cfg, "head")
    finally:
        settings.database_url = original_database_url


class FakeActivityApi:
    """In-process stand-in for the remote REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {
            ACCESS_TOKEN: {
                "id": ACCOUNT_ID,
                "email_verified": True,
                "profile_id": PROFILE_ID,
            },
        }
        self.notifications: list[dict[str, Any]] = []
        self.sync_requests: list[dict[str, Any]] = []
        self.threads: list[dict[str, Any]] = []
        self.messages: dict[str, list[dict[str, Any]]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.failing_paths: set[str] = set()
        self.requests: list[tuple[str, str]] = []
        self._next_message_id = 1000

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.requests.append((method, path))

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        account = self.accounts.get(token)
        if account is None:
            return httpx.Response(401, json={"detail": "Invalid token"})
        if path in self.failing_paths:
            return httpx.Response(503, json={"detail": "Unavailable"})

        if method == "GET" and path == "/auth/me":
            return httpx.Response(
                200,
                json={"id": account["id"], "email_verified": account["email_verified"]},
            )
        if method == "GET" and path == "/ether/me-profile":
            return httpx.Response(200, json={"id": account["profile_id"]})
        if method == "GET" and path == "/ether/notifications":
            return httpx.Response(200, json=self.notifications)
        if method == "POST" and path == "/ether/notifications/mark-read":
            for notification in self.notifications:
                notification.setdefault("read_at", None)
                if notification["read_at"] is None:
                    notification["read_at"] = "2026-10-19T12:00:00Z"
            return httpx.Response(204)
        if method == "GET" and path == "/ether/sync/requests":
            return httpx.Response(200, json=self.sync_requests)
        if method == "GET" and path == "/ether/threads":
            return httpx.Response(200, json=self.threads)

        segments = path.strip("/").split("/")
        if method == "DELETE" and segments[:2] == ["ether", "notifications"]:
            notification_id = segments[2]
            remaining = [
                notification
                for notification in self.notifications
                if str(notification["id"]) != notification_id
            ]
            if len(remaining) == len(self.notifications):
                return httpx.Response(404, json={"detail": "Not found"})
            self.notifications = remaining
            return httpx.Response(204)
        if segments[:2] == ["ether", "threads"] and segments[3:] == ["messages"]:
            thread_id = segments[2]
            if thread_id not in self.messages:
                return httpx.Response(404, json={"detail": "Not found"})
            if method == "GET":
                return httpx.Response(200, json=self.messages[thread_id])
            body = json.loads(request.content)
            self._next_message_id += 1
            message = {
                "id": self._next_message_id,
                "thread_id": thread_id,
                "sender_profile_id": account["profile_id"],
                "content": body["content"],
                "created_at": "2026-10-19T12:30:00Z",
            }
            self.messages[thread_id].append(message)
            return httpx.Response(201, json=message)
        if method == "GET" and segments[:2] == ["ether", "profiles"]:
            profile = self.profiles.get(segments[2])
            if profile is None:
                return httpx.Response(404, json={"detail": "Not found"})
            return httpx.Response(200, json=profile)

        return httpx.Response(404, json={"detail": "Not found"})

    def client(self, access_token: str = ACCESS_TOKEN) -> ActivityApiClient:
        return ActivityApiClient(
            access_token,
            base_url=UPSTREAM_BASE_URL,
            transport=httpx.MockTransport(self.handle),
        )


async def wait_for_condition(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    """Yield to the event loop until the predicate holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Create and migrate a file-backed SQLite database for tests."""
    db_dir = tmp_path_factory.mktemp("sqlite")
    db_path = db_dir / "activity-test.db"
    database_url = f"sqlite+aiosqlite:///{db_path}"
    _run_alembic_migrations(database_url)
    return database_url


@pytest_asyncio.fixture()
async def test_engine(test_database_url: str) -> AsyncIterator:
    """Create an async engine bound to the migrated SQLite test database."""
    engine = create_async_engine(
        test_database_url,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def clean_database(session_maker) -> AsyncIterator[None]:
    """Clear tables before each test to guarantee isolation."""
    async with session_maker() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()
    yield


@pytest_asyncio.fixture()
async def db_session(session_maker) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


@pytest.fixture()
def fake_api() -> FakeActivityApi:
    return FakeActivityApi()


@pytest_asyncio.fixture()
async def engine_registry(
    session_maker,
    fake_api: FakeActivityApi,
) -> AsyncIterator[EngineRegistry]:
    """Registry whose sessions talk to the fake API and poll only on demand."""
    registry = EngineRegistry(
        session_maker,
        client_factory=fake_api.client,
        poll_interval_seconds=3600.0,
        toast_ttl_seconds=60.0,
    )
    yield registry
    await registry.shutdown()


@pytest.fixture()
def app(engine_registry: EngineRegistry) -> FastAPI:
    """Create the FastAPI app around the test registry."""
    return create_app(engine_registry)


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def wait_for() -> Callable[..., Awaitable[None]]:
    return wait_for_condition


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ACCESS_TOKEN}"}


@pytest.fixture()
def wait_until_primed(
    engine_registry: EngineRegistry,
) -> Callable[[str], Awaitable[None]]:
    """Wait until the session's first tick has primed both seen categories."""

    async def _wait(access_token: str = ACCESS_TOKEN) -> None:
        def _primed() -> bool:
            state = engine_registry.get(access_token)
            return (
                state is not None
                and state.seen.is_primed(NOTIFICATIONS_CATEGORY)
                and state.seen.is_primed(SYNC_REQUESTS_CATEGORY)
            )

        await wait_for_condition(_primed)

    return _wait
