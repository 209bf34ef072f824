from __future__ import annotations

from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Request
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from rynk.api.deps import get_optional_user
from rynk.errors import ApiError
from rynk.models.schemas import HumanizeRequest
from rynk.services import streaming
from rynk.services.rate_limit import (
    RateLimitResult,
    check_and_consume_tool_limit,
    get_tool_config,
    get_tool_limit_info,
)
from rynk.services.tools.humanizer import MAX_CHARS, humanize_stream

TOOL_ID = "humanizer"

router = APIRouter(prefix="/api/humanizer", tags=["tools"])


def _limit_headers(limit: RateLimitResult) -> dict[str, str]:
    headers = {"X-RateLimit-Remaining": str(limit.remaining)}
    if limit.is_guest:
        headers["X-RateLimit-Limit"] = str(get_tool_config(TOOL_ID).guest_daily_limit)
    if limit.reset_at:
        headers["X-RateLimit-Reset"] = limit.reset_at.isoformat()
    return headers


async def humanize_events(text: str, limit: RateLimitResult) -> AsyncIterator[dict[str, str]]:
    """Usage meta first, then the rewrite; a failure mid-stream ends with an error event."""
    yield streaming.meta(
        remaining=limit.remaining,
        reset_at=limit.reset_at.isoformat() if limit.reset_at else None,
    ).to_sse()
    try:
        async for event in humanize_stream(text):
            yield event.to_sse()
    except Exception as exc:
        logger.error(f"[Humanizer] Stream error: {exc}")
        yield streaming.error(str(exc) or "Humanization failed").to_sse()


@router.get("")
async def humanizer_status(request: Request, user: dict[str, Any] | None = Depends(get_optional_user)):
    """Remaining humanizer uses for the caller, without consuming one."""
    config = get_tool_config(TOOL_ID)
    limit = await get_tool_limit_info(request, TOOL_ID, user["id"] if user else None)
    return {
        "limit": config.guest_daily_limit if limit.is_guest else None,
        "remaining": limit.remaining,
        "reset_at": limit.reset_at.isoformat() if limit.reset_at else None,
        "window_hours": config.window_hours,
        "is_guest": limit.is_guest,
    }


@router.post("")
async def humanize(
    body: HumanizeRequest,
    request: Request,
    user: dict[str, Any] | None = Depends(get_optional_user),
):
    """Stream the rewritten text as server-sent events.

    The use is counted before the first byte is streamed.
    """
    if not body.text or not body.text.strip():
        raise ApiError(400, "Text is required")
    if len(body.text) > MAX_CHARS:
        raise ApiError(400, f"Text is too long. Maximum {MAX_CHARS:,} characters allowed.")

    limit = await check_and_consume_tool_limit(request, TOOL_ID, user["id"] if user else None)
    if not limit.allowed:
        raise ApiError(
            429,
            "Rate limit exceeded",
            message=limit.error,
            reset_at=limit.reset_at.isoformat() if limit.reset_at else None,
            remaining=0,
        )

    return EventSourceResponse(humanize_events(body.text, limit), headers=_limit_headers(limit))
