"""Per-tool usage limits.

Signed-in users spend credits from ``user_credits``. Guests get a fixed number
of uses per tool inside fixed time buckets, tracked by salted IP hash.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from loguru import logger

from rynk.config import settings
from rynk.services.database import get_pool
from rynk.services.guest import get_client_ip, hash_ip


@dataclass(frozen=True)
class ToolConfig:
    name: str
    guest_daily_limit: int
    credit_cost: int
    window_hours: int = 24


TOOL_CONFIG: dict[str, ToolConfig] = {
    "humanizer": ToolConfig("AI Humanizer", guest_daily_limit=3, credit_cost=1),
    "ai-detector": ToolConfig("AI Content Detector", guest_daily_limit=5, credit_cost=1),
    "summarizer": ToolConfig("Text Summarizer", guest_daily_limit=5, credit_cost=1),
    "paraphraser": ToolConfig("Paraphraser", guest_daily_limit=5, credit_cost=1),
    "grammar": ToolConfig("Grammar Checker", guest_daily_limit=5, credit_cost=1),
    "blog-title": ToolConfig("Blog Title Generator", guest_daily_limit=10, credit_cost=1),
    "email-subject": ToolConfig("Email Subject Line Generator", guest_daily_limit=10, credit_cost=1),
    "instagram-caption": ToolConfig("Instagram Caption Generator", guest_daily_limit=10, credit_cost=1),
    "devils-advocate": ToolConfig("Devil's Advocate", guest_daily_limit=5, credit_cost=1),
}


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    is_guest: bool
    reset_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "is_guest": self.is_guest,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
            "error": self.error,
        }


def get_tool_config(tool_id: str) -> ToolConfig:
    config = TOOL_CONFIG.get(tool_id)
    if config is None:
        raise ValueError(f"Invalid tool ID: {tool_id}")
    return config


def window_bounds(now: float, window_hours: int) -> tuple[int, int]:
    """Fixed bucket containing ``now``, as epoch seconds ``(start, end)``."""
    window = window_hours * 3600
    start = int(now // window) * window
    return start, start + window


def count_in_window(record: dict[str, Any] | None, window_start: int) -> int:
    """Requests recorded in the current bucket; a record from an older bucket counts as zero."""
    if record is None or record["window_start"] < window_start:
        return 0
    return record["request_count"]


def _reset_at(window_end: int) -> datetime:
    return datetime.fromtimestamp(window_end, tz=timezone.utc)


async def _get_user_credits(conn: Any, user_id: str) -> int | None:
    return await conn.fetchval(
        "SELECT credits_remaining FROM user_credits WHERE user_id = $1",
        user_id,
    )


async def _get_guest_record(conn: Any, ip_hash: str, tool_id: str) -> dict[str, Any] | None:
    row = await conn.fetchrow(
        "SELECT request_count, window_start FROM tool_guest_limits WHERE ip_hash = $1 AND tool_id = $2",
        ip_hash,
        tool_id,
    )
    return dict(row) if row else None


async def get_tool_limit_info(
    request: Request,
    tool_id: str,
    user_id: str | None = None,
) -> RateLimitResult:
    """Report whether the caller may use ``tool_id`` without consuming anything."""
    config = get_tool_config(tool_id)
    pool = await get_pool()

    if user_id:
        async with pool.acquire() as conn:
            credits = await _get_user_credits(conn, user_id)
        if credits is None:
            credits = settings.tool_user_credits
        allowed = credits >= config.credit_cost
        return RateLimitResult(
            allowed=allowed,
            remaining=credits,
            is_guest=False,
            error=None if allowed else "Insufficient credits",
        )

    ip_hash = hash_ip(get_client_ip(request))
    window_start, window_end = window_bounds(time.time(), config.window_hours)
    async with pool.acquire() as conn:
        record = await _get_guest_record(conn, ip_hash, tool_id)
    count = count_in_window(record, window_start)
    allowed = count < config.guest_daily_limit
    return RateLimitResult(
        allowed=allowed,
        remaining=max(0, config.guest_daily_limit - count),
        is_guest=True,
        reset_at=_reset_at(window_end),
        error=None if allowed else "Daily limit exceeded",
    )


async def check_and_consume_tool_limit(
    request: Request,
    tool_id: str,
    user_id: str | None = None,
) -> RateLimitResult:
    """Check the limit and, when allowed, record one use of ``tool_id``."""
    config = get_tool_config(tool_id)
    pool = await get_pool()

    if user_id:
        async with pool.acquire() as conn:
            credits = await _get_user_credits(conn, user_id)
            if credits is None:
                await conn.execute(
                    """
                    INSERT INTO user_credits (user_id, credits_remaining, last_refill_date)
                    VALUES ($1, $2, now())
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    user_id,
                    settings.tool_user_credits,
                )
                credits = settings.tool_user_credits

            if credits < config.credit_cost:
                return RateLimitResult(
                    allowed=False,
                    remaining=credits,
                    is_guest=False,
                    error="Insufficient credits",
                )

            await conn.execute(
                """
                UPDATE user_credits
                SET credits_remaining = credits_remaining - $1,
                    total_credits_used = total_credits_used + $1
                WHERE user_id = $2
                """,
                config.credit_cost,
                user_id,
            )
        return RateLimitResult(allowed=True, remaining=credits - config.credit_cost, is_guest=False)

    ip_hash = hash_ip(get_client_ip(request))
    now = time.time()
    window_start, window_end = window_bounds(now, config.window_hours)
    async with pool.acquire() as conn:
        count = count_in_window(await _get_guest_record(conn, ip_hash, tool_id), window_start)
        if count >= config.guest_daily_limit:
            logger.info(f"[RateLimit] Guest limit reached for {tool_id}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                is_guest=True,
                reset_at=_reset_at(window_end),
                error="Daily limit exceeded",
            )

        await conn.execute(
            """
            INSERT INTO tool_guest_limits (ip_hash, tool_id, request_count, window_start, last_request)
            VALUES ($1, $2, 1, $3, $4)
            ON CONFLICT (ip_hash, tool_id) DO UPDATE SET
                request_count = CASE
                    WHEN tool_guest_limits.window_start < $3 THEN 1
                    ELSE tool_guest_limits.request_count + 1
                END,
                window_start = GREATEST(tool_guest_limits.window_start, $3),
                last_request = $4
            """,
            ip_hash,
            tool_id,
            window_start,
            int(now),
        )

    return RateLimitResult(
        allowed=True,
        remaining=config.guest_daily_limit - (count + 1),
        is_guest=True,
        reset_at=_reset_at(window_end),
    )
