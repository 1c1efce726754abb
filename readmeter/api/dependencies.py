"""
FastAPI Dependencies - Authentication and entitlement wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from readmeter.config import settings
from readmeter.db.session import get_write_db
from readmeter.exceptions import AccountNotFoundError, AuthenticationError, TierRequiredError
from readmeter.models.api import Tier
from readmeter.models.domain import AccountSnapshot
from readmeter.services.accounts import AccountService
from readmeter.services.entitlement_gate import EntitlementGate
from readmeter.services.plan_resolver import resolve_tier

logger = get_logger(__name__)

# ============================================================================
# User JWT Authentication (mobile clients)
# ============================================================================


@dataclass
class UserIdentity:
    """Authenticated user identity from JWT token."""

    account_id: UUID
    email: str | None = None


# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


def decode_user_token(token: str, secret: str | None = None) -> UserIdentity:
    """
    Verify an HS256 access token issued by the auth service.

    The sub claim carries the account id.

    Raises:
        AuthenticationError: Expired, malformed or wrongly signed token
    """
    try:
        payload = jwt.decode(
            token, secret or settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc

    try:
        account_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise AuthenticationError("Invalid token: missing or malformed subject") from exc

    email = payload.get("email")
    return UserIdentity(account_id=account_id, email=email if isinstance(email, str) else None)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> UserIdentity:
    """
    FastAPI dependency to validate the user's bearer token.

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_user_token(credentials.credentials)
    except AuthenticationError as exc:
        logger.warning("user_token_rejected", error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_account(
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> AccountSnapshot:
    """
    Load the caller's account snapshot.

    Raises:
        HTTPException 404 if the token's account does not exist
    """
    try:
        return await AccountService(db).get_snapshot(user.account_id)
    except AccountNotFoundError as exc:
        logger.warning("account_not_found", account_id=str(user.account_id))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc


# ============================================================================
# Entitlements
# ============================================================================


async def get_entitlement_gate(db: AsyncSession = Depends(get_write_db)) -> EntitlementGate:
    """Gate bound to the request's write session."""
    return EntitlementGate(db)


def require_tier(*tiers: Tier) -> Callable[..., Awaitable[AccountSnapshot]]:
    """
    Restrict a route to accounts whose resolved tier is one of tiers.

    Usage:
        premium_or_trial = require_tier(Tier.PREMIUM, Tier.TRIAL)

        @router.post("/v1/voice-commands")
        async def voice(account: AccountSnapshot = Depends(premium_or_trial)):
            ...

    Raises:
        TierRequiredError (rendered as 403 PREMIUM_REQUIRED)
    """
    allowed = tuple(tiers)

    async def dependency(
        account: AccountSnapshot = Depends(get_current_account),
    ) -> AccountSnapshot:
        tier = resolve_tier(account, datetime.now(UTC))
        if tier not in allowed:
            logger.info(
                "tier_required",
                account_id=str(account.account_id),
                tier=tier.value,
                allowed=[t.value for t in allowed],
            )
            raise TierRequiredError(tier, allowed)
        return account

    return dependency

