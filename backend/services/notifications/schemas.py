"""Activity payload schemas.

Upstream payloads are parsed here, at the fetcher boundary, into explicit
models. Field names accept both the upstream ``*_profile_id`` spelling and
the engine's own names so the rest of the engine only ever sees one shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)

from .ids import MAX_ITEM_ID_LENGTH, normalize_item_id

NotificationKind = Literal[
    "post_align",
    "post_comment",
    "comment_align",
    "sync_approved",
    "other",
]
KNOWN_NOTIFICATION_KINDS: frozenset[str] = frozenset(
    {"post_align", "post_comment", "comment_align", "sync_approved"}
)
PENDING_SYNC_STATUS = "pending"
PollerState = Literal["idle", "priming", "polling"]


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so comparisons never mix the two."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_item_id(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("identifier must not be a boolean")
    if isinstance(value, (int, str)):
        return normalize_item_id(value)
    return value


ItemId = Annotated[
    str,
    BeforeValidator(_coerce_item_id),
    Field(min_length=1, max_length=MAX_ITEM_ID_LENGTH),
]
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NotificationEvent(_UpstreamModel):
    id: ItemId
    recipient_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("recipient_id", "recipient_profile_id"),
    )
    actor_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("actor_id", "actor_profile_id"),
    )
    kind: NotificationKind = "other"
    subject_post_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("subject_post_id", "post_id"),
    )
    subject_comment_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("subject_comment_id", "comment_id"),
    )
    created_at: UtcDatetime
    read_at: UtcDatetime | None = None
    actor_display_name: str | None = None
    actor_avatar_url: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def fold_unknown_kind(cls, value: Any) -> Any:
        if isinstance(value, str) and value in KNOWN_NOTIFICATION_KINDS:
            return value
        return "other"

    @property
    def is_unread(self) -> bool:
        return self.read_at is None


class SyncRequest(_UpstreamModel):
    id: ItemId
    requester_id: ItemId = Field(
        validation_alias=AliasChoices("requester_id", "requester_profile_id"),
    )
    target_id: ItemId = Field(
        validation_alias=AliasChoices("target_id", "target_profile_id"),
    )
    status: str = PENDING_SYNC_STATUS
    created_at: UtcDatetime
    requester_display_name: str | None = None
    requester_avatar_url: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING_SYNC_STATUS


class ThreadParticipant(_UpstreamModel):
    profile_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("profile_id", "id"),
    )
    user_id: ItemId | None = None
    display_name: str | None = None
    avatar_url: str | None = None


def _expand_participant(value: Any) -> Any:
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        return {"profile_id": value}
    return value


def _expand_participants(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, list):
        return [_expand_participant(item) for item in value]
    return value


class Thread(_UpstreamModel):
    id: ItemId
    participants: Annotated[
        list[ThreadParticipant],
        BeforeValidator(_expand_participants),
    ] = Field(
        default_factory=list,
        validation_alias=AliasChoices("participants", "participant_ids"),
    )


class Message(_UpstreamModel):
    id: ItemId
    thread_id: ItemId | None = None
    sender_id: ItemId | None = Field(
        default=None,
        validation_alias=AliasChoices("sender_id", "sender_profile_id"),
    )
    content: str = ""
    created_at: UtcDatetime

    @field_validator("content", mode="before")
    @classmethod
    def blank_missing_content(cls, value: Any) -> Any:
        return "" if value is None else value


class SessionIdentity(BaseModel):
    account_id: str
    profile_id: str | None
    email_verified: bool

    @property
    def is_eligible(self) -> bool:
        return self.email_verified

    @property
    def self_ids(self) -> frozenset[str]:
        ids = {self.account_id}
        if self.profile_id is not None:
            ids.add(self.profile_id)
        return frozenset(ids)


class Toast(BaseModel):
    id: str
    title: str
    detail: str
    avatar_url: str | None = None
    subject_profile_id: str | None = None
    created_at: datetime


class ThreadUnreadFlag(BaseModel):
    thread_id: str
    unread: bool


class BadgeSnapshot(BaseModel):
    badge: int
    unread_notifications: int
    pending_sync_requests: int
    unread_threads: int
    threads: list[ThreadUnreadFlag] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "BadgeSnapshot":
        return cls(
            badge=0,
            unread_notifications=0,
            pending_sync_requests=0,
            unread_threads=0,
        )


class BadgeResponse(BaseModel):
    state: PollerState
    badge: int
    unread_notifications: int
    pending_sync_requests: int
    unread_threads: int
    updated_at: datetime | None


class ThreadPreviewResponse(BaseModel):
    thread_id: str
    counterpart_profile_id: str | None
    counterpart_display_name: str
    counterpart_avatar_url: str | None
    message: str | None
    created_at: datetime | None
    unread: bool


class ToastListResponse(BaseModel):
    toasts: list[Toast]


class SessionResponse(BaseModel):
    account_id: str
    profile_id: str | None
    state: PollerState


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4000)


class MarkReadResponse(BaseModel):
    marked_count: int
    badge: int


class MeResponse(_UpstreamModel):
    id: ItemId
    email_verified: bool = False


class MeProfileResponse(_UpstreamModel):
    id: ItemId = Field(validation_alias=AliasChoices("id", "profile_id"))
