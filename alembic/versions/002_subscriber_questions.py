"""subscriber questions: fixed question set reused by subscription runs

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, Sequence[str], None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "subscriber_questions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=False),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="general"),
        sa.Column("source", sa.String(32), nullable=False, server_default="user_created"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_run_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["source_run_id"], ["scan_runs.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_subscriber_questions_subscription_id", "subscriber_questions", ["subscription_id"], unique=False
    )
    op.create_index(
        "ix_subscriber_questions_active",
        "subscriber_questions",
        ["subscription_id", "is_active", "is_archived"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_subscriber_questions_active", table_name="subscriber_questions")
    op.drop_index("ix_subscriber_questions_subscription_id", table_name="subscriber_questions")
    op.drop_table("subscriber_questions")
