"""Shared API dependencies."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from services.notifications import EngineRegistry, NotificationEngineState


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = value.strip()
    return token or None


def get_access_token(authorization: str | None = Header(default=None)) -> str:
    token = _extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_engine_registry(request: Request) -> EngineRegistry:
    return request.app.state.engine_registry


def get_engine_state(
    access_token: str = Depends(get_access_token),
    registry: EngineRegistry = Depends(get_engine_registry),
) -> NotificationEngineState:
    state = registry.get(access_token)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Activity session not started",
        )
    return state
