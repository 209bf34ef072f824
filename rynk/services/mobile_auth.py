"""Bearer-token sessions for the native apps.

Tokens are opaque ``access_<uuid>`` / ``refresh_<uuid>`` strings stored in
``mobile_sessions``. Access tokens live for minutes, refresh tokens for months;
refreshing replaces both (sliding window) and invalidates the old pair.
"""

from __future__ import annotations

import base64
import json
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from fastapi import Request
from loguru import logger

from rynk.config import settings
from rynk.errors import ApiError, NotFoundError, UnauthorizedError
from rynk.services import database as db

ACCESS_TOKEN_PREFIX = "access_"
REFRESH_TOKEN_PREFIX = "refresh_"
PROVIDERS = ("google", "apple", "email")


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "access_token_expires_at": self.access_token_expires_at.isoformat(),
            "refresh_token_expires_at": self.refresh_token_expires_at.isoformat(),
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_token_pair(now: datetime | None = None) -> TokenPair:
    now = now or _utc_now()
    return TokenPair(
        access_token=f"{ACCESS_TOKEN_PREFIX}{uuid.uuid4()}",
        refresh_token=f"{REFRESH_TOKEN_PREFIX}{uuid.uuid4()}",
        access_token_expires_at=now + timedelta(minutes=settings.access_token_ttl_minutes),
        refresh_token_expires_at=now + timedelta(days=settings.refresh_token_ttl_days),
    )


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    if expires_at is None:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or _utc_now())


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "email": user.get("email"),
        "name": user.get("name"),
        "image": user.get("image"),
        "credits": user.get("credits") if user.get("credits") is not None else settings.new_user_credits,
        "subscription_tier": user.get("subscription_tier") or "free",
        "subscription_status": user.get("subscription_status") or "none",
    }


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


# --- Provider verification ---

async def verify_google_token(id_token: str) -> dict[str, Any] | None:
    """Check an ID token against Google's tokeninfo endpoint."""
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(settings.google_tokeninfo_url, params={"id_token": id_token})
    except httpx.HTTPError as exc:
        logger.error(f"[MobileAuth] Google token verification error: {exc}")
        return None
    if response.status_code != 200:
        logger.error(f"[MobileAuth] Google token verification failed: {response.status_code}")
        return None
    data = response.json()
    return {"email": data.get("email"), "name": data.get("name"), "picture": data.get("picture")}


def decode_apple_token(identity_token: str, now: float | None = None) -> dict[str, Any] | None:
    """Read the claims of an Apple identity token and check issuer and expiry.

    The signature is not verified against Apple's keys.
    """
    parts = identity_token.split(".")
    if len(parts) != 3:
        return None
    payload_b64 = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, json.JSONDecodeError) as exc:
        logger.error(f"[MobileAuth] Apple token decode error: {exc}")
        return None

    if payload.get("iss") != settings.apple_issuer:
        logger.error("[MobileAuth] Apple token issuer mismatch")
        return None
    exp = payload.get("exp")
    if exp and exp < (now if now is not None else time.time()):
        logger.error("[MobileAuth] Apple token expired")
        return None
    return {"email": payload.get("email"), "sub": payload.get("sub")}


# --- Session lifecycle ---

async def sign_in(
    provider: str,
    *,
    id_token: str | None = None,
    email: str | None = None,
    name: str | None = None,
    image: str | None = None,
    provider_account_id: str | None = None,
) -> dict[str, Any]:
    """Verify the provider credential, find or create the user, open a session."""
    if provider not in PROVIDERS:
        raise ApiError(400, f"Unsupported provider: {provider}")

    if provider == "google" and id_token:
        google_user = await verify_google_token(id_token)
        if not google_user:
            raise UnauthorizedError("Invalid Google token")
        email = google_user["email"]
        name = name or google_user["name"]
        image = image or google_user["picture"]
    elif provider == "apple" and id_token:
        apple_user = decode_apple_token(id_token)
        if not apple_user:
            raise UnauthorizedError("Invalid Apple token")
        # Apple only sends the email on first sign-in
        email = email or apple_user["email"]
        provider_account_id = provider_account_id or apple_user["sub"]

    if not email:
        raise ApiError(400, "Email required")

    user = await db.get_user_by_email(email)
    if user is None:
        user = await db.create_user(email=email, name=name, image=image)
        logger.info(f"[MobileAuth] Created new user: {user['id']}")

    tokens = new_token_pair()
    await db.create_mobile_session(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        user_id=user["id"],
        provider=provider,
        provider_account_id=provider_account_id,
        access_token_expires_at=tokens.access_token_expires_at,
        refresh_token_expires_at=tokens.refresh_token_expires_at,
    )
    logger.info(f"[MobileAuth] Created session for user: {user['id']}")
    return {**tokens.to_dict(), "user": public_user(user)}


async def validate_access_token(token: str | None) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return ``(user, session)`` for a live access token; raise 401/404 otherwise."""
    if not token:
        raise UnauthorizedError("Missing authorization")
    if not token.startswith(ACCESS_TOKEN_PREFIX):
        raise UnauthorizedError("Invalid token type")

    session = await db.get_mobile_session_by_access_token(token)
    if session is None or is_expired(session["access_token_expires_at"]):
        raise UnauthorizedError("Invalid or expired access token")

    user = await db.get_user_by_id(session["user_id"])
    if user is None:
        raise NotFoundError("User not found")
    return user, session


async def refresh_session(refresh_token: str | None) -> dict[str, Any]:
    if not refresh_token:
        raise ApiError(400, "Refresh token required")
    if not refresh_token.startswith(REFRESH_TOKEN_PREFIX):
        raise UnauthorizedError("Invalid token format")

    session = await db.get_mobile_session_by_refresh_token(refresh_token)
    if session is None or is_expired(session["refresh_token_expires_at"]):
        logger.info("[MobileAuth] Invalid or expired refresh token")
        raise UnauthorizedError("Invalid or expired refresh token")

    user = await db.get_user_by_id(session["user_id"])
    if user is None:
        raise NotFoundError("User not found")

    tokens = new_token_pair()
    await db.rotate_mobile_session(
        refresh_token,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        access_token_expires_at=tokens.access_token_expires_at,
        refresh_token_expires_at=tokens.refresh_token_expires_at,
    )
    logger.info(f"[MobileAuth] Tokens refreshed for user: {user['id']}")
    return {**tokens.to_dict(), "user": public_user(user)}


async def sign_out(token: str | None) -> None:
    if not token:
        raise UnauthorizedError("Missing authorization")
    await db.delete_mobile_session(token)


async def get_authenticated_user(request: Request) -> dict[str, Any]:
    """FastAPI dependency: the user behind the request's bearer access token."""
    user, _ = await validate_access_token(bearer_token(request))
    return user


async def get_optional_user(request: Request) -> dict[str, Any] | None:
    """Like ``get_authenticated_user`` but returns None for anonymous or guest callers."""
    token = bearer_token(request)
    if not token or not token.startswith(ACCESS_TOKEN_PREFIX):
        return None
    try:
        user, _ = await validate_access_token(token)
    except ApiError:
        return None
    return user
