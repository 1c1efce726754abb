"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from readmeter.models.api import WORDS_READ_COUNTER, FeatureKey


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Owned by the authentication and billing services; this service only reads it.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Identity / credential
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Plan (e.g. "free", "premium-monthly", "premium-yearly")
    subscription_plan: Mapped[str | None] = mapped_column(
        String(100), nullable=True, default="free"
    )
    subscription_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Trial
    is_trial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, plan={self.subscription_plan}, "
            f"is_trial={self.is_trial}, trial_end_date={self.trial_end_date})>"
        )


class FeatureLimit(Base):
    """
    ORM model for feature_limits table.

    One row per (plan_type, feature_key). Seeded at startup, edited by admins.
    """

    __tablename__ = "feature_limits"

    # Primary Key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Key
    plan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)

    # Limits
    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_unlimited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("plan_type", "feature_key", name="uq_feature_limits_plan_feature"),
        CheckConstraint(
            "plan_type IN ('free', 'trial', 'premium')", name="ck_feature_limits_plan_type"
        ),
        CheckConstraint("daily_limit >= 0", name="ck_feature_limits_daily_non_negative"),
        CheckConstraint("monthly_limit >= 0", name="ck_feature_limits_monthly_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<FeatureLimit(plan_type={self.plan_type}, feature_key={self.feature_key}, "
            f"daily={self.daily_limit}, unlimited={self.is_unlimited})>"
        )


# Counter key -> user_usage column. Every FeatureKey has exactly one column.
USAGE_COUNTER_COLUMNS: dict[str, str] = {
    FeatureKey.CHARACTERS.value: "characters_used",
    FeatureKey.LISTENING_TIME.value: "listening_time_used",
    FeatureKey.TRANSLATIONS.value: "translations_used",
    FeatureKey.VOICE_COMMANDS.value: "voice_commands_used",
    FeatureKey.OCR_PAGES.value: "ocr_pages_used",
    FeatureKey.DOWNLOADS.value: "downloads_used",
    FeatureKey.ACTION_POINTS.value: "action_points_used",
    FeatureKey.SUMMARIES.value: "summaries_used",
    FeatureKey.CHATBOT_QUESTIONS.value: "chatbot_questions_used",
    FeatureKey.NATURAL_VOICES.value: "natural_voices_used",
    FeatureKey.ADS_FREE.value: "ads_free_used",
    FeatureKey.SOCIAL_MEDIA_CONTROL.value: "social_media_control_used",
    WORDS_READ_COUNTER: "words_read",
}


def _counter() -> Mapped[int]:
    return mapped_column(Integer, nullable=False, default=0, server_default="0")


class UsageCounter(Base):
    """
    ORM model for user_usage table.

    One row per (account_id, usage_date). Created lazily by the first
    increment of the day and only ever mutated through an additive upsert.
    """

    __tablename__ = "user_usage"

    # Primary Key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Key
    account_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Counters
    characters_used: Mapped[int] = _counter()
    listening_time_used: Mapped[int] = _counter()
    translations_used: Mapped[int] = _counter()
    voice_commands_used: Mapped[int] = _counter()
    ocr_pages_used: Mapped[int] = _counter()
    downloads_used: Mapped[int] = _counter()
    action_points_used: Mapped[int] = _counter()
    summaries_used: Mapped[int] = _counter()
    chatbot_questions_used: Mapped[int] = _counter()
    natural_voices_used: Mapped[int] = _counter()
    ads_free_used: Mapped[int] = _counter()
    social_media_control_used: Mapped[int] = _counter()
    words_read: Mapped[int] = _counter()

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("account_id", "usage_date", name="uq_user_usage_account_date"),
        Index("idx_user_usage_account_date", "account_id", "usage_date"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UsageCounter(account_id={self.account_id}, usage_date={self.usage_date})>"
