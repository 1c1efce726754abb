"""
Tests for API dependencies.

Covers user token decoding, account loading, tier gating and admin auth.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from conftest import (
    NOW,
    create_mock_account,
    make_admin_token,
    make_snapshot,
    make_user_token,
    mock_result,
)
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from readmeter.api.admin_dependencies import (
    AdminPrincipal,
    check_admin_role,
    get_current_admin,
    require_admin_role,
    verify_admin_token,
)
from readmeter.api.dependencies import (
    UserIdentity,
    decode_user_token,
    get_current_account,
    get_current_user,
    require_tier,
)
from readmeter.exceptions import AuthenticationError, AuthorizationError
from readmeter.models.api import Tier
from readmeter.models.domain import AccountSnapshot


class TestDecodeUserToken:
    """Tests for user JWT verification."""

    def test_valid_token(self):
        """sub becomes the account id, email is optional."""
        account_id = uuid4()
        token = make_user_token(account_id, email="reader@example.com")

        identity = decode_user_token(token)

        assert identity == UserIdentity(account_id=account_id, email="reader@example.com")

    def test_expired_token(self):
        """Expired tokens are rejected."""
        token = make_user_token(uuid4(), expires_in=timedelta(seconds=-10))

        with pytest.raises(AuthenticationError, match="Token expired"):
            decode_user_token(token)

    def test_wrong_secret(self):
        """Tokens signed with another key are rejected."""
        token = make_user_token(uuid4(), secret="some-other-secret-that-is-long-enough")

        with pytest.raises(AuthenticationError, match="Invalid token"):
            decode_user_token(token)

    def test_subject_must_be_uuid(self):
        """A non-UUID subject is rejected."""
        token = make_user_token(uuid4(), sub="not-a-uuid")

        with pytest.raises(AuthenticationError, match="subject"):
            decode_user_token(token)

    def test_garbage_token(self):
        """Malformed tokens are rejected."""
        with pytest.raises(AuthenticationError):
            decode_user_token("not.a.jwt")


class TestGetCurrentUser:
    """Tests for the bearer dependency."""

    async def test_missing_credentials_is_401(self):
        """No Authorization header is 401."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)
        assert exc_info.value.status_code == 401

    async def test_invalid_token_is_401(self):
        """Bad tokens are 401 with the reason."""
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="bad")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials)
        assert exc_info.value.status_code == 401

    async def test_valid_token(self):
        """Valid tokens yield the identity."""
        account_id = uuid4()
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=make_user_token(account_id)
        )
        identity = await get_current_user(credentials)
        assert identity.account_id == account_id


class TestGetCurrentAccount:
    """Tests for loading the caller's account."""

    async def test_loads_snapshot(self, db_session):
        """The account row becomes a snapshot."""
        row = create_mock_account(subscription_plan="premium-monthly")
        db_session.execute = AsyncMock(return_value=mock_result(scalar=row))

        snapshot = await get_current_account(UserIdentity(account_id=row.id), db_session)

        assert snapshot.account_id == row.id
        assert snapshot.plan == "premium-monthly"

    async def test_missing_account_is_404(self, db_session):
        """Tokens for deleted accounts are 404."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_account(UserIdentity(account_id=uuid4()), db_session)
        assert exc_info.value.status_code == 404


class TestRequireTier:
    """Tests for tier-gated routes."""

    @pytest.fixture
    def gated_app(self):
        """Small app with one premium-or-trial route and one premium-only route."""
        from readmeter.exceptions import TierRequiredError
        from readmeter.main import tier_required_handler

        app = FastAPI()
        app.add_exception_handler(TierRequiredError, tier_required_handler)
        premium_or_trial = require_tier(Tier.PREMIUM, Tier.TRIAL)
        premium_only = require_tier(Tier.PREMIUM)

        @app.get("/voice")
        async def voice(account: AccountSnapshot = Depends(premium_or_trial)):
            return {"ok": True}

        @app.get("/export")
        async def export(account: AccountSnapshot = Depends(premium_only)):
            return {"ok": True}

        return app

    def _client(self, app: FastAPI, account: AccountSnapshot) -> TestClient:
        app.dependency_overrides[get_current_account] = lambda: account
        return TestClient(app)

    def test_free_account_rejected(self, gated_app):
        """Free accounts get 403 PREMIUM_REQUIRED."""
        client = self._client(gated_app, make_snapshot(plan="free"))

        response = client.get("/voice")

        assert response.status_code == 403
        assert response.json() == {
            "error": "Premium or Trial subscription required",
            "code": "PREMIUM_REQUIRED",
            "plan": "free",
            "message": "This feature is not available in the free plan",
        }

    def test_trial_account_allowed_where_trial_listed(self, gated_app):
        """Active trials pass premium-or-trial routes."""
        account = make_snapshot(is_trial=True, trial_end_date=NOW + timedelta(days=3650))
        client = self._client(gated_app, account)

        assert client.get("/voice").status_code == 200

    def test_trial_account_rejected_from_premium_only(self, gated_app):
        """Premium-only routes name the caller's plan."""
        account = make_snapshot(is_trial=True, trial_end_date=NOW + timedelta(days=3650))
        client = self._client(gated_app, account)

        response = client.get("/export")

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Premium subscription required"
        assert body["plan"] == "trial"
        assert body["message"].endswith("Your current plan: trial")

    def test_premium_account_allowed(self, gated_app):
        """Premium accounts pass both routes."""
        client = self._client(gated_app, make_snapshot(plan="premium-yearly"))

        assert client.get("/voice").status_code == 200
        assert client.get("/export").status_code == 200


class TestAdminAuth:
    """Tests for admin token verification and roles."""

    def test_verify_admin_token(self):
        """Valid admin tokens return their payload."""
        payload = verify_admin_token(make_admin_token(role="viewer"))
        assert payload is not None
        assert payload["role"] == "viewer"

    def test_verify_expired_admin_token(self):
        """Expired admin tokens are None."""
        assert verify_admin_token(make_admin_token(expires_in=timedelta(seconds=-5))) is None

    def test_verify_without_secret(self):
        """No configured secret means nobody is an admin."""
        fake_settings = MagicMock(admin_jwt_secret="", jwt_algorithm="HS256")
        with patch("readmeter.api.admin_dependencies.get_settings", return_value=fake_settings):
            assert verify_admin_token(make_admin_token()) is None

    async def test_bearer_header(self):
        """Authorization header is read first."""
        request = MagicMock()
        request.cookies.get.return_value = None

        admin = await get_current_admin(
            request=request, authorization=f"Bearer {make_admin_token(subject='ops-7')}"
        )

        assert admin == AdminPrincipal(
            subject="ops-7", email="admin@readmeter.example", role="admin"
        )

    async def test_cookie_fallback(self):
        """admin_token cookie is used when there is no header."""
        request = MagicMock()
        request.cookies.get.return_value = make_admin_token(role="viewer")

        admin = await get_current_admin(request=request, authorization=None)

        assert admin.role == "viewer"
        request.cookies.get.assert_called_once_with("admin_token")

    async def test_missing_token_is_401(self):
        """No header and no cookie is 401."""
        request = MagicMock()
        request.cookies.get.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin(request=request, authorization=None)
        assert exc_info.value.status_code == 401

    async def test_user_token_is_not_admin(self):
        """Tokens signed with the user secret are rejected."""
        request = MagicMock()
        request.cookies.get.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin(
                request=request, authorization=f"Bearer {make_user_token(uuid4())}"
            )
        assert exc_info.value.status_code == 401

    async def test_unknown_role_is_403(self):
        """Roles outside admin/viewer are forbidden."""
        request = MagicMock()
        request.cookies.get.return_value = None

        with pytest.raises(HTTPException) as exc_info:
            await get_current_admin(
                request=request, authorization=f"Bearer {make_admin_token(role='reader')}"
            )
        assert exc_info.value.status_code == 403

    def test_check_admin_role_rejects_viewer(self):
        """Viewers fail the write check with the role they lack."""
        viewer = AdminPrincipal(subject="v", email=None, role="viewer")

        with pytest.raises(AuthorizationError) as exc_info:
            check_admin_role(viewer)
        assert exc_info.value.required_role == "admin"

    async def test_viewer_cannot_write(self):
        """require_admin_role rejects viewers."""
        viewer = AdminPrincipal(subject="v", email=None, role="viewer")

        with pytest.raises(HTTPException) as exc_info:
            await require_admin_role(viewer)
        assert exc_info.value.status_code == 403

    async def test_admin_can_write(self):
        """require_admin_role passes admins through."""
        admin = AdminPrincipal(subject="a", email=None, role="admin")
        assert await require_admin_role(admin) is admin
