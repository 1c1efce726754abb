"""entitlement schema

Revision ID: 2026_01_05_0001
Revises:
Create Date: 2026-01-05 00:00:00.000000

Creates accounts, feature_limits and user_usage. Default limit rows are
written by the application seed routine, not by this migration.
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_01_05_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

USAGE_COLUMNS = (
    "characters_used",
    "listening_time_used",
    "translations_used",
    "voice_commands_used",
    "ocr_pages_used",
    "downloads_used",
    "action_points_used",
    "summaries_used",
    "chatbot_questions_used",
    "natural_voices_used",
    "ads_free_used",
    "social_media_control_used",
    "words_read",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # ========================================================================
    # accounts
    # ========================================================================
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("subscription_plan", sa.String(100), nullable=True, server_default="free"),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("subscription_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # ========================================================================
    # feature_limits
    # ========================================================================
    op.create_table(
        "feature_limits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("plan_type", sa.String(20), nullable=False),
        sa.Column("feature_key", sa.String(50), nullable=False),
        sa.Column("daily_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_limit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_unlimited", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("plan_type", "feature_key", name="uq_feature_limits_plan_feature"),
        sa.CheckConstraint(
            "plan_type IN ('free', 'trial', 'premium')", name="ck_feature_limits_plan_type"
        ),
        sa.CheckConstraint("daily_limit >= 0", name="ck_feature_limits_daily_non_negative"),
        sa.CheckConstraint("monthly_limit >= 0", name="ck_feature_limits_monthly_non_negative"),
    )

    # ========================================================================
    # user_usage
    # ========================================================================
    op.create_table(
        "user_usage",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "account_id",
            sa.Uuid(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("usage_date", sa.Date(), nullable=False),
        *[
            sa.Column(name, sa.Integer(), nullable=False, server_default="0")
            for name in USAGE_COLUMNS
        ],
        *_timestamps(),
        sa.UniqueConstraint("account_id", "usage_date", name="uq_user_usage_account_date"),
    )
    op.create_index("idx_user_usage_account_date", "user_usage", ["account_id", "usage_date"])


def downgrade() -> None:
    op.drop_index("idx_user_usage_account_date", table_name="user_usage")
    op.drop_table("user_usage")
    op.drop_table("feature_limits")
    op.drop_table("accounts")
