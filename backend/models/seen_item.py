"""Seen activity identifier persistence model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint, func
from sqlmodel import Field, SQLModel


class SeenItem(SQLModel, table=True):
    """Records that an activity item was already surfaced to an account."""

    __tablename__ = "seen_items"
    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "category",
            "item_id",
            name="ux_seen_items_account_category_item",
        ),
        Index("ix_seen_items_account_category", "account_id", "category"),
    )

    id: int | None = Field(default=None, primary_key=True)
    account_id: str = Field(sa_column=Column(String(64), nullable=False))
    category: str = Field(sa_column=Column(String(32), nullable=False))
    item_id: str = Field(sa_column=Column(String(191), nullable=False))
    seen_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        )
    )
