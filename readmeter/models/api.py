"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed, except the
feature-keyed maps the mobile client renders directly.
"""

from datetime import date
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field


class Tier(str, Enum):
    """Entitlement tier derived from account state."""

    FREE = "free"
    TRIAL = "trial"
    PREMIUM = "premium"


class FeatureKey(str, Enum):
    """Metered feature identifiers."""

    CHARACTERS = "characters"
    LISTENING_TIME = "listening_time"
    TRANSLATIONS = "translations"
    VOICE_COMMANDS = "voice_commands"
    OCR_PAGES = "ocr_pages"
    DOWNLOADS = "downloads"
    ACTION_POINTS = "action_points"
    SUMMARIES = "summaries"
    CHATBOT_QUESTIONS = "chatbot_questions"
    NATURAL_VOICES = "natural_voices"
    ADS_FREE = "ads_free"
    SOCIAL_MEDIA_CONTROL = "social_media_control"


class DenialReason(str, Enum):
    """Why an entitlement check was denied."""

    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    NOT_CONFIGURED = "NOT_CONFIGURED"


# Statistic counter stored alongside the feature counters; never gated.
WORDS_READ_COUNTER = "words_read"


# ============================================================================
# Entitlement Check Models
# ============================================================================


class EntitlementCheckRequest(BaseModel):
    """POST /v1/entitlements/check request body."""

    feature_key: FeatureKey
    units: int = Field(default=1, ge=0, description="Units the caller intends to consume")


class EntitlementDecisionResponse(BaseModel):
    """Approved entitlement check."""

    approved: bool
    feature_key: FeatureKey
    plan: Tier
    used: int | None = Field(None, description="Units consumed today (null when unlimited)")
    limit: int | None = Field(None, description="Daily limit (null when unlimited)")
    remaining: int | None = Field(None, description="Units left today (null when unlimited)")
    is_unlimited: bool


class LimitExceededResponse(BaseModel):
    """429 body returned when a check is denied."""

    success: bool = False
    error: str
    code: DenialReason
    feature_key: FeatureKey
    plan: Tier
    used: int
    limit: int
    remaining: int


class TierRequiredResponse(BaseModel):
    """403 body returned by tier-gated routes."""

    error: str
    code: Literal["PREMIUM_REQUIRED"] = "PREMIUM_REQUIRED"
    plan: Tier
    message: str


# ============================================================================
# Usage Commit Models
# ============================================================================


class CommitUsageRequest(BaseModel):
    """POST /v1/entitlements/commit request body."""

    feature_key: FeatureKey
    units: int = Field(..., ge=0, description="Units actually consumed")


class CommitUsageResponse(BaseModel):
    """Result of a usage commit. Failures are reported, never raised."""

    recorded: bool
    feature_key: FeatureKey
    units: int


class ReadingProgressRequest(BaseModel):
    """POST /v1/usage/reading-progress request body."""

    characters_read: int = Field(default=0, ge=0)
    listening_minutes: int = Field(default=0, ge=0)
    words_read: int = Field(default=0, ge=0)


class ReadingProgressResponse(BaseModel):
    """Which counters were recorded for a reading progress report."""

    success: bool = True
    recorded: list[str]
    failed: list[str]


# ============================================================================
# Usage / Limits View Models
# ============================================================================


class FeatureLimitView(BaseModel):
    """Per-feature limit as shown to the user."""

    daily: int
    monthly: int
    unlimited: bool


class MyLimitsResponse(BaseModel):
    """GET /v1/limits response."""

    success: bool = True
    plan_type: Tier
    limits: dict[FeatureKey, FeatureLimitView]


class UsageSummaryResponse(BaseModel):
    """GET /v1/usage response."""

    success: bool = True
    plan: str = Field(..., description="Raw plan (e.g. 'premium-yearly'), 'trial' or 'free'")
    limits: dict[FeatureKey, int]
    usage: dict[FeatureKey, int]


class FeatureQuotaResponse(BaseModel):
    """GET /v1/usage/{feature_key} response."""

    success: bool = True
    feature_key: FeatureKey
    plan_type: Tier
    today_usage: int
    daily_limit: int
    today_remaining: int
    monthly_usage: int
    monthly_limit: int
    monthly_remaining: int | None = Field(None, description="None when no monthly limit applies")
    is_unlimited: bool
    reset_type: Literal["daily"] = "daily"
    next_reset: str = Field(..., description="ISO 8601 timestamp of the next daily reset")


# ============================================================================
# Admin Models
# ============================================================================


class FeatureLimitResponse(BaseModel):
    """Stored feature limit row."""

    plan_type: Tier
    feature_key: FeatureKey
    daily_limit: int
    monthly_limit: int
    is_unlimited: bool


class FeatureLimitListResponse(BaseModel):
    """Admin list of feature limits."""

    success: bool = True
    limits: list[FeatureLimitResponse]


class UpsertFeatureLimitRequest(BaseModel):
    """PUT /admin/feature-limits/{plan_type}/{feature_key} request body."""

    daily_limit: int = Field(..., ge=0)
    monthly_limit: int = Field(default=0, ge=0, description="0 means not enforced monthly")
    is_unlimited: bool = False


class BulkFeatureLimitItem(UpsertFeatureLimitRequest):
    """One row of a bulk tier update."""

    feature_key: FeatureKey


class BulkUpsertFeatureLimitsRequest(BaseModel):
    """PUT /admin/feature-limits/{plan_type} request body."""

    limits: list[BulkFeatureLimitItem] = Field(..., min_length=1)


class SeedFeatureLimitsResponse(BaseModel):
    """POST /admin/feature-limits/seed response."""

    success: bool = True
    seeded: int


class AccountUsageResponse(BaseModel):
    """Admin view of one account's counters for a day."""

    account_id: UUID
    usage_date: date
    usage: dict[FeatureKey, int]
    words_read: int


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str
