"""Tests for bearer-token sessions."""
import base64
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from rynk.config import settings
from rynk.errors import ApiError, UnauthorizedError
from rynk.services import mobile_auth


def apple_token(payload: dict) -> str:
    body = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
    return f"header.{body}.signature"


def test_token_pair_prefixes_and_expiry():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    pair = mobile_auth.new_token_pair(now)
    assert pair.access_token.startswith("access_")
    assert pair.refresh_token.startswith("refresh_")
    assert pair.access_token_expires_at == now + timedelta(minutes=settings.access_token_ttl_minutes)
    assert pair.refresh_token_expires_at == now + timedelta(days=settings.refresh_token_ttl_days)


def test_is_expired():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert mobile_auth.is_expired(None, now)
    assert mobile_auth.is_expired(now - timedelta(seconds=1), now)
    assert not mobile_auth.is_expired(now + timedelta(minutes=5), now)
    # naive timestamps are treated as UTC
    assert not mobile_auth.is_expired(datetime(2026, 1, 2), now)


def test_public_user_defaults():
    user = mobile_auth.public_user({"id": "u1", "email": "a@example.com"})
    assert user["credits"] == settings.new_user_credits
    assert user["subscription_tier"] == "free"
    assert user["subscription_status"] == "none"


class TestAppleToken:
    def test_valid_claims(self):
        token = apple_token({"iss": settings.apple_issuer, "exp": 2000, "email": "a@example.com", "sub": "s1"})
        assert mobile_auth.decode_apple_token(token, now=1000) == {"email": "a@example.com", "sub": "s1"}

    def test_wrong_issuer(self):
        token = apple_token({"iss": "https://evil.example", "exp": 2000})
        assert mobile_auth.decode_apple_token(token, now=1000) is None

    def test_expired(self):
        token = apple_token({"iss": settings.apple_issuer, "exp": 500})
        assert mobile_auth.decode_apple_token(token, now=1000) is None

    def test_malformed(self):
        assert mobile_auth.decode_apple_token("not-a-jwt") is None


@pytest.mark.asyncio
async def test_unsupported_provider():
    with pytest.raises(ApiError) as exc_info:
        await mobile_auth.sign_in("myspace", email="a@example.com")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_email_sign_in_creates_user_and_session():
    create_user = AsyncMock(return_value={"id": "u1", "email": "a@example.com"})
    create_session = AsyncMock()
    with patch.object(mobile_auth.db, "get_user_by_email", AsyncMock(return_value=None)), \
         patch.object(mobile_auth.db, "create_user", create_user), \
         patch.object(mobile_auth.db, "create_mobile_session", create_session):
        result = await mobile_auth.sign_in("email", email="a@example.com", name="A")

    create_user.assert_awaited_once_with(email="a@example.com", name="A", image=None)
    assert create_session.await_args.kwargs["user_id"] == "u1"
    assert result["access_token"].startswith("access_")
    assert result["user"]["id"] == "u1"


@pytest.mark.asyncio
async def test_sign_in_requires_email():
    with pytest.raises(ApiError) as exc_info:
        await mobile_auth.sign_in("email")
    assert exc_info.value.message == "Email required"


@pytest.mark.asyncio
async def test_invalid_google_token():
    with patch.object(mobile_auth, "verify_google_token", AsyncMock(return_value=None)):
        with pytest.raises(UnauthorizedError):
            await mobile_auth.sign_in("google", id_token="bad")


@pytest.mark.asyncio
async def test_expired_access_token_is_rejected():
    session = {"user_id": "u1", "access_token_expires_at": datetime(2000, 1, 1, tzinfo=timezone.utc)}
    with patch.object(mobile_auth.db, "get_mobile_session_by_access_token", AsyncMock(return_value=session)):
        with pytest.raises(UnauthorizedError) as exc_info:
            await mobile_auth.validate_access_token("access_abc")
    assert exc_info.value.message == "Invalid or expired access token"


@pytest.mark.asyncio
async def test_refresh_rotates_both_tokens():
    session = {"user_id": "u1", "refresh_token_expires_at": datetime(2999, 1, 1, tzinfo=timezone.utc)}
    rotate = AsyncMock()
    with patch.object(mobile_auth.db, "get_mobile_session_by_refresh_token", AsyncMock(return_value=session)), \
         patch.object(mobile_auth.db, "get_user_by_id", AsyncMock(return_value={"id": "u1"})), \
         patch.object(mobile_auth.db, "rotate_mobile_session", rotate):
        result = await mobile_auth.refresh_session("refresh_old")

    assert rotate.await_args.args == ("refresh_old",)
    assert rotate.await_args.kwargs["refresh_token"] == result["refresh_token"]
    assert result["refresh_token"] != "refresh_old"


@pytest.mark.asyncio
async def test_refresh_rejects_wrong_prefix():
    with pytest.raises(UnauthorizedError):
        await mobile_auth.refresh_session("access_abc")
    with pytest.raises(ApiError):
        await mobile_auth.refresh_session(None)


class _SessionStore:
    """In-memory stand-in for the mobile_sessions table, keyed by refresh token."""

    def __init__(self, refresh_token, user_id="u1"):
        self.sessions = {
            refresh_token: {
                "user_id": user_id,
                "refresh_token_expires_at": datetime(2999, 1, 1, tzinfo=timezone.utc),
            }
        }

    async def get(self, refresh_token):
        return self.sessions.get(refresh_token)

    async def rotate(self, old_refresh_token, *, refresh_token, refresh_token_expires_at, **_):
        session = self.sessions.pop(old_refresh_token)
        self.sessions[refresh_token] = {**session, "refresh_token_expires_at": refresh_token_expires_at}


@pytest.mark.asyncio
async def test_refresh_token_is_single_use():
    store = _SessionStore("refresh_first")
    with patch.object(mobile_auth.db, "get_mobile_session_by_refresh_token", store.get), \
         patch.object(mobile_auth.db, "get_user_by_id", AsyncMock(return_value={"id": "u1"})), \
         patch.object(mobile_auth.db, "rotate_mobile_session", store.rotate):
        first = await mobile_auth.refresh_session("refresh_first")
        with pytest.raises(UnauthorizedError):
            await mobile_auth.refresh_session("refresh_first")
        second = await mobile_auth.refresh_session(first["refresh_token"])

    assert second["refresh_token"] != first["refresh_token"]
    assert list(store.sessions) == [second["refresh_token"]]
