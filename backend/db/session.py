"""Async database engine and session factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core import settings

_connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

async_engine = create_async_engine(
    settings.database_url,
    connect_args=_connect_args,
)
AsyncSessionMaker = async_sessionmaker(async_engine, expire_on_commit=False)
