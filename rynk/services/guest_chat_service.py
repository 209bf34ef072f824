"""Guest chat turns.

Same shape as the authenticated flow but backed by guest tables and guest
credits. The conversation is created lazily on the first message, and the
turn can run a web search before answering depending on the reasoning mode.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.errors import ApiError, NotFoundError
from rynk.models.events import StatusType, now_ms
from rynk.services import guest
from rynk.services import guest_store
from rynk.services.agentic.intent_analyzer import analyze_intent
from rynk.services.agentic.source_orchestrator import SourceOrchestrator
from rynk.services.chat_service import ChatTurn, ref_ids
from rynk.services.output_guard import validate_output
from rynk.services.prompt_sanitizer import format_search_results_safely
from rynk.services.prompt_store import render_prompt
from rynk.services.reasoning_detector import (
    REASONING_MODES,
    detect_reasoning,
    get_reasoning_model,
    resolve_reasoning_mode,
)
from rynk.services.stream_manager import StreamManager

TITLE_MAX_CHARS = 100
REFERENCED_MESSAGE_LIMIT = 50


def credits_exceeded() -> ApiError:
    return ApiError(
        403,
        "GUEST_CREDITS_EXCEEDED",
        message="Guest credits exhausted",
        remaining=0,
        limit=settings.guest_credits_limit,
    )


def domain_name(url: str) -> str:
    host = urlparse(url).netloc or url
    return host[4:] if host.startswith("www.") else host


def _transcript(messages: list[dict[str, Any]]) -> str:
    return "\n\n".join(
        f"{'AI' if m['role'] == 'assistant' else 'User'}: {m['content']}"
        for m in messages
        if m["role"] in ("user", "assistant") and m["content"]
    )


async def build_guest_context(
    guest_id: str,
    history: list[dict[str, Any]],
    referenced_conversations: list[Any] | None,
    referenced_folders: list[Any] | None = None,
) -> str:
    """Transcript of the current conversation plus referenced guest conversations and folders."""
    parts: list[str] = []
    if history:
        parts.append(render_prompt("chat.history_block", history=_transcript(history)))

    conversation_ids = ref_ids(referenced_conversations)
    for folder_id in ref_ids(referenced_folders):
        folder = await guest_store.get_folder(guest_id, folder_id)
        for conversation in (folder or {}).get("conversations", []):
            if conversation["id"] not in conversation_ids:
                conversation_ids.append(conversation["id"])

    if conversation_ids:
        sections = []
        for conversation in await guest_store.get_conversations_by_ids(guest_id, conversation_ids):
            messages = (await guest_store.get_messages(conversation["id"]))[:REFERENCED_MESSAGE_LIMIT]
            if messages:
                sections.append(f'--- From: "{conversation["title"]}" ---\n{_transcript(messages)}')
        if sections:
            parts.append(
                "=== REFERENCED CONVERSATIONS ===\n"
                + "\n\n".join(sections)
                + "\n=== END OF REFERENCED CONVERSATIONS ==="
            )
    return "\n\n".join(parts)


def prepare_guest_messages(history: list[dict[str, Any]], context_text: str) -> list[dict[str, str]]:
    """System identity (with today's date and the context) followed by the chat history.

    Guests cannot send images to the model; attachments are named inline instead.
    """
    today = datetime.now(timezone.utc).strftime("%A, %B %d, %Y")
    system = render_prompt("chat.system_identity", current_date=today)
    if context_text:
        system += "\n\n" + render_prompt("chat.context_preamble", context=context_text)

    messages = [{"role": "system", "content": system}]
    for message in history:
        if message["role"] not in ("user", "assistant"):
            continue
        content = message["content"]
        names = [a.get("name") for a in message.get("attachments") or [] if a.get("name")]
        if names:
            content = f"{content}\n\n[Attachments: {', '.join(names)}]"
        messages.append({"role": message["role"], "content": content})
    return messages


async def run_web_search(query: str, stream: StreamManager) -> dict[str, Any] | None:
    """Plan and run a multi-source search, announcing progress on ``stream``.

    Returns the de-duplicated sources, or None when the search failed.
    """
    stream.send_status(StatusType.SEARCHING, "Analyzing search intent...")
    try:
        _, plan = await analyze_intent(query)
        stream.send_status(StatusType.SEARCHING, f"Searching {', '.join(plan.sources)}...")
        results = await SourceOrchestrator().execute_source_plan(plan)
    except Exception as exc:
        logger.error(f"[GuestChatService] Search failed, continuing without: {exc}")
        return None

    unique: dict[str, dict[str, Any]] = {}
    for result in results:
        for citation in result.citations:
            if citation.url and citation.url not in unique:
                unique[citation.url] = {
                    "type": result.source,
                    "url": citation.url,
                    "title": citation.title,
                    "snippet": citation.snippet or "",
                }
    sources = list(unique.values())
    search = {
        "query": plan.search_queries.exa or plan.search_queries.perplexity or query,
        "sources": sources,
        "strategy": plan.sources,
        "total_results": len(sources),
    }
    stream.send_search_results(
        query=search["query"],
        sources=sources,
        strategy=plan.sources,
        total_results=len(sources),
    )
    if sources:
        domains = list(dict.fromkeys(domain_name(s["url"]) for s in sources[:3]))
        more = " and more..." if len(sources) > 3 else "..."
        stream.send_status(StatusType.READING_SOURCES, f"Reading {', '.join(domains)}{more}")
    return search


def _status_pills(use_web_search: bool) -> list[dict[str, Any]]:
    steps = [(StatusType.ANALYZING, "Analyzing request...")]
    if use_web_search:
        steps.append((StatusType.SEARCHING, "Searching..."))
    steps += [
        (StatusType.SYNTHESIZING, "Synthesizing response..."),
        (StatusType.COMPLETE, "Reasoning complete"),
    ]
    return [{"status": s.value, "message": m, "timestamp": now_ms()} for s, m in steps]


async def handle_guest_chat_request(
    guest_id: str,
    conversation_id: str,
    content: str | None = None,
    message_id: str | None = None,
    attachments: list[dict[str, Any]] | None = None,
    referenced_conversations: list[Any] | None = None,
    referenced_folders: list[Any] | None = None,
    *,
    user_message_id: str | None = None,
    assistant_message_id: str | None = None,
    reasoning_mode: str = "auto",
) -> ChatTurn:
    """Start a guest chat turn and return the running stream.

    ``user_message_id`` / ``assistant_message_id`` let the client choose the ids
    of the two new messages.
    """
    if reasoning_mode not in REASONING_MODES:
        raise ApiError(400, f"Invalid reasoning mode: {reasoning_mode}")

    credit_state = await guest.check_guest_credits(guest_id)
    if not credit_state["has_credits"]:
        raise credits_exceeded()

    conversation = await guest_store.get_conversation(guest_id, conversation_id)

    if message_id:
        user_message = await guest_store.get_message(guest_id, message_id)
        if user_message is None:
            raise NotFoundError(f"User message {message_id} not found")
        if conversation is None:
            raise NotFoundError("Conversation not found")
        query = user_message["content"]
        referenced_conversations = user_message.get("referenced_conversations") or []
        referenced_folders = user_message.get("referenced_folders") or []
    elif content:
        query = content
    else:
        raise ApiError(400, "Either message or message_id must be provided")

    # Credit is spent before any row is written
    if not await guest.decrement_guest_credits(guest_id):
        raise credits_exceeded()

    if not message_id:
        if conversation is None:
            conversation = await guest_store.create_conversation(
                guest_id, content[:TITLE_MAX_CHARS], conversation_id=conversation_id
            )
        user_message = await guest_store.add_message(
            guest_id,
            conversation_id,
            "user",
            content,
            attachments=attachments,
            referenced_conversations=referenced_conversations,
            referenced_folders=referenced_folders,
            message_id=user_message_id,
        )

    assistant_message = await guest_store.add_message(
        guest_id, conversation_id, "assistant", "", message_id=assistant_message_id
    )
    has_files = bool(attachments)

    async def produce(stream: StreamManager) -> None:
        stream.send_status(StatusType.ANALYZING, "Analyzing request...")

        history = [
            m for m in await guest_store.get_messages(conversation_id) if m["id"] != assistant_message["id"]
        ]
        context_text = await build_guest_context(
            guest_id, history, referenced_conversations, referenced_folders
        )
        messages = prepare_guest_messages(history, context_text)

        use_reasoning = use_web_search = False
        # Regenerations skip detection and web search
        if content and reasoning_mode != "off":
            detection = await detect_reasoning(query) if reasoning_mode == "auto" else None
            use_reasoning, use_web_search = resolve_reasoning_mode(reasoning_mode, detection)

        search = await run_web_search(query, stream) if use_web_search else None

        stream.send_status(StatusType.SYNTHESIZING, "Synthesizing response...")
        if search and search["sources"]:
            messages[0]["content"] += "\n\n" + format_search_results_safely(search["sources"], search["query"])

        provider = llm_client.get_ai_provider(has_files)
        model = get_reasoning_model(use_reasoning) if provider.name == "groq" else None

        chunks: list[str] = []
        async with provider.stream(messages, model=model, caller="guest_chat") as reply:
            async for text in reply.text_stream:
                chunks.append(text)
                if not stream.send_text(text):
                    logger.warning(f"[GuestChatService] Client disconnected from {conversation_id}")
                    break

        validation = validate_output("".join(chunks))
        if not validation.is_clean:
            logger.warning(f"[GuestChatService] Output validation warnings: {validation.warnings}")

        reasoning_metadata = None
        if use_reasoning or use_web_search:
            reasoning_metadata = {"status_pills": _status_pills(use_web_search), "search_results": search}
        await guest_store.update_message(
            assistant_message["id"], validation.redacted_output, reasoning_metadata
        )
        stream.close()

    stream = StreamManager()
    stream.run(produce)

    remaining = (await guest.check_guest_credits(guest_id))["remaining"]
    return ChatTurn(
        user_message_id=user_message["id"],
        assistant_message_id=assistant_message["id"],
        stream=stream,
        credits_remaining=remaining,
    )
