"""Add read cursor and seen item tables."""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

TIMESTAMP_DEFAULT = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "read_cursors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("thread_id", sa.String(length=64), nullable=False),
        sa.Column("watermark", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=TIMESTAMP_DEFAULT,
            nullable=False,
        ),
        sa.UniqueConstraint(
            "account_id",
            "thread_id",
            name="ux_read_cursors_account_thread",
        ),
    )
    op.create_index(
        "ix_read_cursors_account_id",
        "read_cursors",
        ["account_id"],
        unique=False,
    )

    op.create_table(
        "seen_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("item_id", sa.String(length=191), nullable=False),
        sa.Column(
            "seen_at",
            sa.DateTime(timezone=True),
            server_default=TIMESTAMP_DEFAULT,
            nullable=False,
        ),
        sa.UniqueConstraint(
            "account_id",
            "category",
            "item_id",
            name="ux_seen_items_account_category_item",
        ),
    )
    op.create_index(
        "ix_seen_items_account_category",
        "seen_items",
        ["account_id", "category"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_seen_items_account_category", table_name="seen_items")
    op.drop_table("seen_items")
    op.drop_index("ix_read_cursors_account_id", table_name="read_cursors")
    op.drop_table("read_cursors")
