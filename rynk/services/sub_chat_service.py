"""Replies inside sub-chats: side threads anchored to a quoted excerpt."""

from __future__ import annotations

import time
import uuid
from typing import Any, AsyncIterator

from loguru import logger

from rynk import llm_client
from rynk.services.agentic.intent_analyzer import analyze_intent
from rynk.services.agentic.source_orchestrator import SourceOrchestrator
from rynk.services.agentic.types import SourceResult
from rynk.services.prompt_store import render_prompt
from rynk.services.reasoning_detector import detect_reasoning, resolve_reasoning_mode


def new_message(role: str, content: str) -> dict[str, Any]:
    return {
        "id": f"msg_{uuid.uuid4().hex[:12]}",
        "role": role,
        "content": content,
        "created_at": int(time.time() * 1000),
    }


def format_search_context(results: list[SourceResult]) -> str:
    sections = []
    for result in results:
        if not result.citations:
            continue
        lines = [
            f"{i}. {c.title}: {c.snippet or ''}\nURL: {c.url}"
            for i, c in enumerate(result.citations[:3], start=1)
        ]
        sections.append(f"\n### {result.source.upper()} Results:\n" + "\n\n".join(lines))
    if not sections:
        return ""
    return (
        "\n\n## Web Search Results:\n"
        + "\n".join(sections)
        + "\n\nUse these sources to provide accurate, up-to-date information. "
        "Cite relevant sources in your response."
    )


async def search_context_for(query: str) -> str:
    """Web search context for a sub-chat question, or "" when none is needed or search fails."""
    detection = await detect_reasoning(query)
    _, use_web_search = resolve_reasoning_mode("auto", detection)
    if not use_web_search:
        return ""
    try:
        _, plan = await analyze_intent(query)
        results = await SourceOrchestrator().execute_source_plan(plan)
    except Exception as exc:
        logger.error(f"[SubChat] Web search error: {exc}")
        return ""
    return format_search_context(results)


def build_messages(
    sub_chat: dict[str, Any],
    messages: list[dict[str, Any]],
    *,
    quoted_text: str | None = None,
    search_context: str = "",
) -> list[dict[str, str]]:
    system = render_prompt(
        "sub_chat.system",
        source_content=sub_chat.get("source_message_content") or "",
        quoted_text=quoted_text or sub_chat.get("quoted_text") or "",
        search_context=search_context,
    )
    return [{"role": "system", "content": system}] + [
        {"role": m["role"], "content": m["content"]} for m in messages
    ]


async def reply(sub_chat: dict[str, Any], content: str) -> list[dict[str, Any]]:
    """Append the user's message and a complete assistant reply; return the new message list.

    The caller persists the returned list.
    """
    messages = list(sub_chat.get("messages") or [])
    messages.append(new_message("user", content.strip()))

    answer = await llm_client.get_ai_provider().complete(
        build_messages(sub_chat, messages),
        caller="sub_chat",
    )
    messages.append(new_message("assistant", answer))
    return messages


async def stream_reply(
    sub_chat: dict[str, Any],
    quoted_text: str | None = None,
    *,
    collected: list[str] | None = None,
) -> AsyncIterator[str]:
    """Stream an answer to the latest user message in the sub-chat.

    Text chunks are also appended to ``collected`` so the caller can store the
    reply once the stream finishes.
    """
    messages = list(sub_chat.get("messages") or [])
    user_messages = [m for m in messages if m.get("role") == "user"]
    latest = max(user_messages, key=lambda m: m.get("created_at") or 0) if user_messages else None
    search_context = await search_context_for(latest["content"]) if latest else ""

    provider = llm_client.get_ai_provider()
    async with provider.stream(
        build_messages(sub_chat, messages, quoted_text=quoted_text, search_context=search_context),
        caller="sub_chat_stream",
    ) as stream:
        async for text in stream.text_stream:
            if collected is not None:
                collected.append(text)
            yield text
