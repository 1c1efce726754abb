"""
Admin authentication dependencies for protecting admin routes.

Admin tokens are HS256 JWTs signed with ADMIN_JWT_SECRET carrying
sub, email and role (admin or viewer).
"""

from dataclasses import dataclass

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from structlog import get_logger

from readmeter.config import get_settings
from readmeter.exceptions import AuthorizationError

logger = get_logger(__name__)

ADMIN_ROLES = frozenset({"admin", "viewer"})


@dataclass(frozen=True)
class AdminPrincipal:
    """Authenticated admin console user."""

    subject: str
    email: str | None
    role: str

    @property
    def can_write(self) -> bool:
        return self.role == "admin"


def verify_admin_token(token: str) -> dict[str, str | int] | None:
    """Verify admin JWT and return payload, or None when invalid."""
    settings = get_settings()
    if not settings.admin_jwt_secret:
        logger.warning("admin_jwt_secret_not_configured")
        return None

    try:
        payload: dict[str, str | int] = jwt.decode(
            token, settings.admin_jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        return payload
    except jwt.ExpiredSignatureError:
        logger.warning("admin_jwt_expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("admin_jwt_invalid", error=str(e))
        return None


async def get_current_admin(
    request: Request,
    authorization: str | None = Header(None),
) -> AdminPrincipal:
    """
    Get current authenticated admin.

    Checks Authorization header first, then the admin_token cookie.

    Raises:
        HTTPException(401): If no token provided or token is invalid
        HTTPException(403): If token role is not an admin console role
    """
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization.removeprefix("Bearer ")

    if not token:
        token = request.cookies.get("admin_token")

    if not token:
        logger.warning("admin_auth_no_token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_admin_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = str(payload.get("role", ""))
    if role not in ADMIN_ROLES:
        logger.warning("admin_auth_unknown_role", subject=str(payload["sub"]), role=role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin console access required",
        )

    email = payload.get("email")
    admin = AdminPrincipal(
        subject=str(payload["sub"]),
        email=email if isinstance(email, str) else None,
        role=role,
    )
    logger.debug("admin_auth_success", subject=admin.subject, role=admin.role)
    return admin


def check_admin_role(admin: AdminPrincipal) -> AdminPrincipal:
    """
    Ensure the principal may change admin state.

    Raises:
        AuthorizationError: Principal is a viewer
    """
    if not admin.can_write:
        raise AuthorizationError("admin")
    return admin


async def require_admin_role(
    admin: AdminPrincipal = Depends(get_current_admin),
) -> AdminPrincipal:
    """
    Require admin role (not just viewer).

    Raises:
        HTTPException(403): If user is a viewer
    """
    try:
        return check_admin_role(admin)
    except AuthorizationError as exc:
        logger.warning(
            "admin_auth_insufficient_role",
            subject=admin.subject,
            role=admin.role,
            required_role=exc.required_role,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Admin role required. Your role: {admin.role} (read-only)",
        ) from exc
