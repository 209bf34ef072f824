"""Single-prompt text tools, each behind the per-tool usage limit.

Every route follows the same order: validate input, check the limit without
consuming it, run the tool, then consume one use.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from loguru import logger

from rynk.api.deps import get_optional_user
from rynk.errors import ApiError
from rynk.models.schemas import (
    BlogTitleRequest,
    EmailSubjectRequest,
    GrammarRequest,
    InstagramCaptionRequest,
    ParaphraserRequest,
    SummarizerRequest,
    TextRequest,
)
from rynk.services.rate_limit import check_and_consume_tool_limit, get_tool_limit_info
from rynk.services.tools.ai_detector import detect_ai_content
from rynk.services.tools.devils_advocate import analyze_argument
from rynk.services.tools.generators import (
    generate_email_subjects,
    generate_instagram_captions,
    generate_titles,
)
from rynk.services.tools.grammar import check_grammar
from rynk.services.tools.paraphraser import MODES, paraphrase_text
from rynk.services.tools.summarizer import summarize_text

router = APIRouter(prefix="/api/tools", tags=["tools"])


def require_length(text: str | None, minimum: int, message: str) -> str:
    text = (text or "").strip()
    if len(text) < minimum:
        raise ApiError(400, message)
    return text


async def run_limited(
    request: Request,
    tool_id: str,
    user: dict[str, Any] | None,
    job: Callable[[], Awaitable[Any]],
) -> dict[str, Any]:
    """``job`` is only started once the limit check has passed."""
    user_id = user["id"] if user else None
    limit = await get_tool_limit_info(request, tool_id, user_id)
    if not limit.allowed:
        raise ApiError(
            429,
            "Rate limit exceeded",
            message=limit.error,
            reset_at=limit.reset_at.isoformat() if limit.reset_at else None,
        )

    try:
        result = await job()
    except ValueError as exc:
        # Unparseable model output
        logger.error(f"[Tools] {tool_id} failed: {exc}")
        raise ApiError(500, str(exc)) from exc

    await check_and_consume_tool_limit(request, tool_id, user_id)
    return {"result": asdict(result) if is_dataclass(result) else result}


@router.post("/summarizer")
async def summarizer(body: SummarizerRequest, request: Request, user=Depends(get_optional_user)):
    text = require_length(body.text, 50, "Text must be at least 50 characters")
    return await run_limited(
        request, "summarizer", user, lambda: summarize_text(text, body.length, body.format)
    )


@router.post("/paraphraser")
async def paraphraser(body: ParaphraserRequest, request: Request, user=Depends(get_optional_user)):
    text = require_length(body.text, 20, "Text must be at least 20 characters")
    if body.mode not in MODES:
        raise ApiError(400, f"Invalid mode. Use: {', '.join(MODES)}.")
    return await run_limited(request, "paraphraser", user, lambda: paraphrase_text(text, body.mode))


@router.post("/grammar")
async def grammar(body: GrammarRequest, request: Request, user=Depends(get_optional_user)):
    text = require_length(body.text, 10, "Text must be at least 10 characters")
    return await run_limited(request, "grammar", user, lambda: check_grammar(text, body.tone))


@router.post("/ai-detector")
async def ai_detector(body: TextRequest, request: Request, user=Depends(get_optional_user)):
    text = require_length(body.text, 50, "Text must be at least 50 characters for accurate detection")
    return await run_limited(request, "ai-detector", user, lambda: detect_ai_content(text))


@router.post("/blog-title")
async def blog_title(body: BlogTitleRequest, request: Request, user=Depends(get_optional_user)):
    topic = require_length(body.topic, 3, "Topic must be at least 3 characters")
    return await run_limited(
        request, "blog-title", user, lambda: generate_titles(topic, body.style, body.count)
    )


@router.post("/email-subject")
async def email_subject(body: EmailSubjectRequest, request: Request, user=Depends(get_optional_user)):
    content = require_length(body.content, 5, "Content must be at least 5 characters")
    return await run_limited(request, "email-subject", user, lambda: generate_email_subjects(content))


@router.post("/instagram-caption")
async def instagram_caption(body: InstagramCaptionRequest, request: Request, user=Depends(get_optional_user)):
    description = require_length(body.description, 3, "Description must be at least 3 characters")
    return await run_limited(
        request, "instagram-caption", user, lambda: generate_instagram_captions(description, body.vibe)
    )


@router.post("/devils-advocate")
async def devils_advocate(body: TextRequest, request: Request, user=Depends(get_optional_user)):
    argument = require_length(body.text, 50, "Argument must be at least 50 characters")
    return await run_limited(request, "devils-advocate", user, lambda: analyze_argument(argument))
