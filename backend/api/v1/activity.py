"""Unread activity endpoints shared by every UI surface."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.deps import get_access_token, get_engine_registry, get_engine_state
from services.notifications import (
    ActivityApiError,
    BadgeResponse,
    EmailNotVerifiedError,
    EngineRegistry,
    MarkReadResponse,
    NotificationEngineState,
    SendMessageRequest,
    SessionResponse,
    ThreadPreviewResponse,
    ToastListResponse,
    UnknownThreadError,
)

router = APIRouter(prefix="/activity", tags=["activity"])


def _raise_upstream_error(exc: ActivityApiError) -> NoReturn:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Not found upstream",
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Activity API unavailable",
    ) from exc


def _raise_unknown_thread(exc: UnknownThreadError) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Thread not found",
    ) from exc


def _badge_response(state: NotificationEngineState) -> BadgeResponse:
    badge = state.badge
    return BadgeResponse(
        state=state.state,
        badge=badge.badge,
        unread_notifications=badge.unread_notifications,
        pending_sync_requests=badge.pending_sync_requests,
        unread_threads=badge.unread_threads,
        updated_at=state.poller.badge_updated_at,
    )


@router.post("/session", response_model=SessionResponse)
async def start_session(
    access_token: str = Depends(get_access_token),
    registry: EngineRegistry = Depends(get_engine_registry),
) -> SessionResponse:
    try:
        state = await registry.start_session(access_token)
    except EmailNotVerifiedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email not verified",
        ) from exc
    except ActivityApiError as exc:
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            ) from exc
        _raise_upstream_error(exc)

    return SessionResponse(
        account_id=state.identity.account_id,
        profile_id=state.identity.profile_id,
        state=state.state,
    )


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    access_token: str = Depends(get_access_token),
    registry: EngineRegistry = Depends(get_engine_registry),
) -> Response:
    await registry.end_session(access_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/badge", response_model=BadgeResponse)
async def get_badge(
    state: NotificationEngineState = Depends(get_engine_state),
) -> BadgeResponse:
    return _badge_response(state)


@router.post("/refresh", response_model=BadgeResponse)
async def refresh_activity(
    state: NotificationEngineState = Depends(get_engine_state),
) -> BadgeResponse:
    await state.poller.poll_now()
    return _badge_response(state)


@router.get("/threads", response_model=list[ThreadPreviewResponse])
async def list_threads(
    state: NotificationEngineState = Depends(get_engine_state),
) -> list[ThreadPreviewResponse]:
    return [
        ThreadPreviewResponse(
            thread_id=preview.thread_id,
            counterpart_profile_id=preview.counterpart_profile_id,
            counterpart_display_name=preview.counterpart_display_name,
            counterpart_avatar_url=preview.counterpart_avatar_url,
            message=preview.preview_text,
            created_at=preview.last_activity_at,
            unread=unread,
        )
        for preview, unread in state.thread_previews()
    ]


@router.post("/threads/{thread_id}/open", response_model=BadgeResponse)
async def open_thread(
    thread_id: str,
    state: NotificationEngineState = Depends(get_engine_state),
) -> BadgeResponse:
    try:
        await state.open_thread(thread_id)
    except UnknownThreadError as exc:
        _raise_unknown_thread(exc)
    return _badge_response(state)


@router.post("/threads/{thread_id}/messages", response_model=BadgeResponse)
async def send_thread_message(
    thread_id: str,
    payload: SendMessageRequest,
    state: NotificationEngineState = Depends(get_engine_state),
) -> BadgeResponse:
    try:
        await state.send_message(thread_id, payload.content)
    except UnknownThreadError as exc:
        _raise_unknown_thread(exc)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except ActivityApiError as exc:
        _raise_upstream_error(exc)
    return _badge_response(state)


@router.get("/toasts", response_model=ToastListResponse)
async def list_toasts(
    state: NotificationEngineState = Depends(get_engine_state),
) -> ToastListResponse:
    return ToastListResponse(toasts=state.toasts.items())


@router.delete("/toasts/{toast_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_toast(
    toast_id: str,
    state: NotificationEngineState = Depends(get_engine_state),
) -> Response:
    if not state.toasts.dismiss(toast_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Toast not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/notifications/mark-read", response_model=MarkReadResponse)
async def mark_notifications_read(
    state: NotificationEngineState = Depends(get_engine_state),
) -> MarkReadResponse:
    try:
        marked_count = await state.mark_all_notifications_read()
    except ActivityApiError as exc:
        _raise_upstream_error(exc)
    return MarkReadResponse(marked_count=marked_count, badge=state.badge.badge)


@router.delete("/notifications/{notification_id}", response_model=BadgeResponse)
async def delete_notification(
    notification_id: str,
    state: NotificationEngineState = Depends(get_engine_state),
) -> BadgeResponse:
    try:
        await state.delete_notification(notification_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    except ActivityApiError as exc:
        _raise_upstream_error(exc)
    return _badge_response(state)
