"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID

from readmeter.models.api import FeatureKey, Tier
from readmeter.models.domain import Decision


class EntitlementError(Exception):
    """Base exception for all entitlement errors."""

    pass


class NotConfiguredError(EntitlementError):
    """Raised when no feature limit row exists for a tier/feature pair."""

    def __init__(self, tier: Tier, feature_key: FeatureKey) -> None:
        self.tier = tier
        self.feature_key = feature_key
        super().__init__(f"No feature limit configured for {tier.value}/{feature_key.value}")


class LimitExceededError(EntitlementError):
    """Raised when requested consumption would exceed the daily cap."""

    def __init__(self, decision: Decision) -> None:
        self.decision = decision
        super().__init__(
            f"Daily limit exceeded for {decision.feature_key.value}. "
            f"Used: {decision.used}, Limit: {decision.limit}, Requested: {decision.requested}"
        )


class InvalidAmountError(EntitlementError):
    """Raised when a unit amount is negative or not an integer."""

    def __init__(self, amount: object) -> None:
        self.amount = amount
        super().__init__(f"Invalid amount: {amount!r} (must be a non-negative integer)")


class StorageUnavailableError(EntitlementError):
    """Raised when the catalog or ledger cannot reach the database."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Storage unavailable during {operation}: {message}")


class AccountNotFoundError(EntitlementError):
    """Raised when account doesn't exist."""

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AuthenticationError(EntitlementError):
    """Raised when authentication fails (missing, expired or invalid token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(EntitlementError):
    """Raised when caller lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Authorization failed: requires role {required_role}")


class TierRequiredError(EntitlementError):
    """Raised when a route is restricted to tiers the caller does not have."""

    def __init__(self, tier: Tier, allowed: tuple[Tier, ...]) -> None:
        self.tier = tier
        self.allowed = allowed
        allowed_names = ", ".join(t.value for t in allowed)
        super().__init__(f"Tier {tier.value} not allowed (requires one of: {allowed_names})")
