"""
Unit tests for authentication service.
Tests Supabase access token verification and profile lookup.
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import jwt
import pytest

from hoopspotter.database.models import Profile, UserRole
from hoopspotter.services import auth_service
from hoopspotter.services.errors import ConfigurationError

SECRET = "super-secret-jwt-token-with-at-least-32-characters"
USER_ID = uuid.UUID("00000000-0000-4000-8000-000000000002")


def _token(secret=SECRET, **claims):
    payload = {
        "sub": str(USER_ID),
        "email": "baller@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@patch.dict("os.environ", {"SUPABASE_JWT_SECRET": SECRET})
class TestVerifyToken:
    """Tests for verify_token()."""

    def test_valid_token(self):
        payload = auth_service.verify_token(_token())
        assert payload["sub"] == str(USER_ID)
        assert payload["email"] == "baller@example.com"
        assert auth_service.get_user_id(payload) == USER_ID

    def test_wrong_secret(self):
        assert auth_service.verify_token(_token(secret="another-secret-that-is-long-enough")) is None

    def test_expired(self):
        expired = _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        assert auth_service.verify_token(expired) is None

    def test_wrong_audience(self):
        assert auth_service.verify_token(_token(aud="anon")) is None

    def test_missing_subject(self):
        assert auth_service.verify_token(_token(sub="")) is None

    def test_garbage(self):
        assert auth_service.verify_token("not.a.jwt") is None


class TestConfiguration:
    @patch.dict("os.environ", {"SUPABASE_JWT_SECRET": ""})
    def test_missing_secret_rejects_tokens(self):
        assert auth_service.verify_token(_token()) is None
        with pytest.raises(ConfigurationError):
            auth_service.check_auth_configuration()

    @patch.dict("os.environ", {"SUPABASE_JWT_SECRET": SECRET})
    def test_configured(self):
        auth_service.check_auth_configuration()


class TestGetUserId:
    def test_malformed_subject(self):
        assert auth_service.get_user_id({"sub": "not-a-uuid"}) is None
        assert auth_service.get_user_id({}) is None


class TestProfiles:
    @pytest.mark.asyncio
    async def test_get_profile(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = Profile(
            id=USER_ID, display_name="baller", role=UserRole.ADMIN, avatar_url=None
        )
        mock_session.execute.return_value = result

        profile = await auth_service.get_profile(mock_session, USER_ID)

        assert profile == {
            "id": USER_ID,
            "display_name": "baller",
            "role": "admin",
            "avatar_url": None,
        }

    @pytest.mark.asyncio
    async def test_ensure_profile_creates_default(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result

        profile = await auth_service.ensure_profile(mock_session, USER_ID, "baller@example.com")

        assert profile["display_name"] == "baller"
        assert profile["role"] == "user"
        created = mock_session.add.call_args.args[0]
        assert isinstance(created, Profile)
        assert created.id == USER_ID
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ensure_profile_keeps_existing(self, mock_session):
        result = MagicMock()
        result.scalar_one_or_none.return_value = Profile(
            id=USER_ID, display_name="Existing", role=UserRole.USER
        )
        mock_session.execute.return_value = result

        profile = await auth_service.ensure_profile(mock_session, USER_ID, "x@example.com")

        assert profile["display_name"] == "Existing"
        mock_session.add.assert_not_called()
