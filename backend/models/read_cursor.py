"""Per-thread read watermark persistence model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, String, UniqueConstraint, func
from sqlmodel import Field, SQLModel


class ReadCursor(SQLModel, table=True):
    """Timestamp of the last message an account has seen in a thread."""

    __tablename__ = "read_cursors"
    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "thread_id",
            name="ux_read_cursors_account_thread",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(
        sa_column=Column(String(64), nullable=False, index=True)
    )
    thread_id: str = Field(sa_column=Column(String(64), nullable=False))
    watermark: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        )
    )
