"""Guest sessions: anonymous, credit-limited usage keyed by an opaque ``guest_`` id."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Request
from loguru import logger

from rynk.config import settings
from rynk.services.database import get_pool
from rynk.services.logger import log_db_operation

GUEST_ID_PREFIX = "guest_"


def generate_guest_id() -> str:
    return f"{GUEST_ID_PREFIX}{uuid.uuid4()}"


def hash_ip(ip: str) -> str:
    """Salted SHA-256 of a client IP, so raw addresses are never stored."""
    return hashlib.sha256(f"{ip}{settings.ip_hash_salt}".encode("utf-8")).hexdigest()


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return "127.0.0.1"


def get_guest_id_from_request(request: Request) -> str | None:
    """Find the guest id in the Authorization header, ``guest_id`` cookie or query string.

    Values that do not carry the ``guest_`` prefix are ignored.
    """
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token.startswith(GUEST_ID_PREFIX):
            return token

    cookie_value = request.cookies.get("guest_id")
    if cookie_value and cookie_value.startswith(GUEST_ID_PREFIX):
        return cookie_value

    query_value = request.query_params.get("guest_id")
    if query_value and query_value.startswith(GUEST_ID_PREFIX):
        return query_value

    return None


async def get_guest_session(guest_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM guest_sessions WHERE guest_id = $1", guest_id)
        return dict(row) if row else None


async def get_or_create_guest_session(request: Request) -> dict[str, Any]:
    """Return the caller's guest session, creating one if needed.

    A new session only receives the credits its IP has not already spent
    across sessions created within the IP window.
    """
    guest_id = get_guest_id_from_request(request)
    ip_hash = hash_ip(get_client_ip(request))
    user_agent = request.headers.get("user-agent", "")

    pool = await get_pool()
    async with pool.acquire() as conn:
        if guest_id:
            existing = await conn.fetchrow(
                """
                UPDATE guest_sessions SET last_active = now()
                WHERE guest_id = $1
                RETURNING *
                """,
                guest_id,
            )
            if existing:
                return dict(existing)

        window_start = datetime.now(timezone.utc) - timedelta(days=settings.guest_ip_window_days)
        used = await conn.fetchval(
            """
            SELECT COALESCE(SUM(message_count), 0) FROM guest_sessions
            WHERE ip_hash = $1 AND created_at > $2
            """,
            ip_hash,
            window_start,
        )
        credits = max(0, settings.guest_credits_limit - int(used or 0))

        row = await conn.fetchrow(
            """
            INSERT INTO guest_sessions (guest_id, ip_hash, user_agent, credits_remaining, message_count)
            VALUES ($1, $2, $3, $4, 0)
            RETURNING *
            """,
            guest_id or generate_guest_id(),
            ip_hash,
            user_agent,
            credits,
        )
    logger.info(f"Created guest session {row['guest_id']} with {credits} credits")
    return dict(row)


async def decrement_guest_credits(guest_id: str) -> bool:
    """Spend one guest credit. Returns False when none are left."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        updated = await conn.fetchval(
            """
            UPDATE guest_sessions
            SET credits_remaining = credits_remaining - 1,
                message_count = message_count + 1,
                last_active = now()
            WHERE guest_id = $1 AND credits_remaining > 0
            RETURNING credits_remaining
            """,
            guest_id,
        )
    return updated is not None


async def check_guest_credits(guest_id: str) -> dict[str, Any]:
    session = await get_guest_session(guest_id)
    if not session:
        return {"has_credits": False, "remaining": 0}
    remaining = session["credits_remaining"]
    return {"has_credits": remaining > 0, "remaining": remaining}


async def cleanup_old_guest_sessions() -> int:
    """Delete guest sessions (and their data) older than the retention window."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=settings.guest_session_max_age_days)
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute("DELETE FROM guest_sessions WHERE created_at < $1", cutoff)
    deleted = int(result.split()[-1]) if result else 0
    log_db_operation("delete", "guest_sessions", "success", details=f"{deleted} sessions older than {cutoff.isoformat()}")
    return deleted
