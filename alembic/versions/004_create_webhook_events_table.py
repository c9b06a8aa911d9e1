"""Create webhook_events ledger table.

Revision ID: 004_webhook_events
Revises: 003_membership_cards
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "004_webhook_events"
down_revision: str | None = "003_membership_cards"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'processing'")),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "claimed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('processing','completed','failed')",
            name="ck_webhook_event_status",
        ),
    )
    op.create_index("idx_webhook_events_status", "webhook_events", ["status"])
    op.create_index("idx_webhook_events_claimed_at", "webhook_events", ["claimed_at"])


def downgrade() -> None:
    op.drop_index("idx_webhook_events_claimed_at", table_name="webhook_events")
    op.drop_index("idx_webhook_events_status", table_name="webhook_events")
    op.drop_table("webhook_events")
