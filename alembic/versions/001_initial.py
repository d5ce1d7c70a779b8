"""initial schema: accounts, subscriptions, scan runs and results, reports

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", "domain", name="uq_account_email_domain"),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=False)
    op.create_index("ix_accounts_domain", "accounts", ["domain"], unique=False)

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("tier", sa.String(32), nullable=False, server_default="starter"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("scan_schedule_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("scan_schedule_hour", sa.Integer(), nullable=False, server_default="9"),
        sa.Column("scan_timezone", sa.String(64), nullable=False, server_default="Australia/Sydney"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "domain", name="uq_subscription_account_domain"),
    )
    op.create_index("ix_subscriptions_account_id", "subscriptions", ["account_id"], unique=False)
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"], unique=False)

    op.create_table(
        "tracked_competitors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subscription_id", "name", name="uq_tracked_competitor_subscription_name"),
    )
    op.create_index(
        "ix_tracked_competitors_subscription_id", "tracked_competitors", ["subscription_id"], unique=False
    )

    op.create_table(
        "scan_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=True),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("trigger_type", sa.String(32), nullable=False, server_default="automatic"),
        sa.Column("celery_task_id", sa.String(255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scan_runs_account_id", "scan_runs", ["account_id"], unique=False)
    op.create_index("ix_scan_runs_status", "scan_runs", ["status"], unique=False)
    op.create_index("ix_scan_runs_created_at", "scan_runs", ["created_at"], unique=False)
    op.create_index(
        "ix_scan_runs_subscription_status", "scan_runs", ["subscription_id", "status"], unique=False
    )
    op.create_index(
        "ix_scan_runs_subscription_trigger_created",
        "scan_runs",
        ["subscription_id", "trigger_type", "created_at"],
        unique=False,
    )

    op.create_table(
        "site_analyses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("business_type", sa.String(255), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("services", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("target_audience", sa.Text(), nullable=True),
        sa.Column("key_phrases", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("industry", sa.String(255), nullable=True),
        sa.Column("pages_crawled", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("raw_content", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["scan_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id"),
    )

    op.create_table(
        "scan_prompts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False, server_default="general"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["scan_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scan_prompts_run_sort", "scan_prompts", ["run_id", "sort_order"], unique=False)

    op.create_table(
        "platform_responses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("prompt_id", sa.Uuid(), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("response_text", sa.Text(), nullable=True),
        sa.Column("domain_mentioned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("mention_position", sa.Integer(), nullable=True),
        sa.Column("competitors_mentioned", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["scan_runs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["prompt_id"], ["scan_prompts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "run_id", "prompt_id", "platform", name="uq_platform_response_run_prompt_platform"
        ),
    )
    op.create_index("ix_platform_responses_run_id", "platform_responses", ["run_id"], unique=False)

    op.create_table(
        "reports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("url_token", sa.String(64), nullable=False),
        sa.Column("visibility_score", sa.Integer(), nullable=False),
        sa.Column("prominence_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("platform_scores", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("top_competitors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("all_competitors", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("total_mentions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_queries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_queries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["scan_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id"),
    )
    op.create_index("ix_reports_url_token", "reports", ["url_token"], unique=True)

    op.create_table(
        "score_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("subscription_id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("visibility_score", sa.Integer(), nullable=False),
        sa.Column("platform_scores", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("total_mentions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_queries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["run_id"], ["scan_runs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id"),
    )
    op.create_index(
        "ix_score_history_subscription_recorded",
        "score_history",
        ["subscription_id", "recorded_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_score_history_subscription_recorded", table_name="score_history")
    op.drop_table("score_history")
    op.drop_index("ix_reports_url_token", table_name="reports")
    op.drop_table("reports")
    op.drop_index("ix_platform_responses_run_id", table_name="platform_responses")
    op.drop_table("platform_responses")
    op.drop_index("ix_scan_prompts_run_sort", table_name="scan_prompts")
    op.drop_table("scan_prompts")
    op.drop_table("site_analyses")
    op.drop_index("ix_scan_runs_subscription_trigger_created", table_name="scan_runs")
    op.drop_index("ix_scan_runs_subscription_status", table_name="scan_runs")
    op.drop_index("ix_scan_runs_created_at", table_name="scan_runs")
    op.drop_index("ix_scan_runs_status", table_name="scan_runs")
    op.drop_index("ix_scan_runs_account_id", table_name="scan_runs")
    op.drop_table("scan_runs")
    op.drop_index("ix_tracked_competitors_subscription_id", table_name="tracked_competitors")
    op.drop_table("tracked_competitors")
    op.drop_index("ix_subscriptions_status", table_name="subscriptions")
    op.drop_index("ix_subscriptions_account_id", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_accounts_domain", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
