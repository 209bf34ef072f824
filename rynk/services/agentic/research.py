"""Agentic research turn: plan, fetch sources in parallel, synthesize with citations."""

from __future__ import annotations

import time
from typing import Any, AsyncIterator

from loguru import logger

from rynk.models.events import EventType, SSEEvent, StatusType
from rynk.services import database as db
from rynk.services import streaming
from rynk.services.agentic.intent_analyzer import analyze_intent
from rynk.services.agentic.response_synthesizer import ResponseSynthesizer
from rynk.services.agentic.source_orchestrator import SourceOrchestrator
from rynk.services.agentic.types import Citation
from rynk.services.logger import log_event
from rynk.services.output_guard import validate_output

SOURCE_LABELS = {
    "exa": "Exa",
    "perplexity": "Perplexity",
    "wikipedia": "Wikipedia",
    "financial": "market data",
}


async def run_research(
    query: str,
    history: list[dict[str, Any]] | None = None,
    *,
    orchestrator: SourceOrchestrator | None = None,
    synthesizer: ResponseSynthesizer | None = None,
    citations_out: list[Citation] | None = None,
    plan_out: dict[str, Any] | None = None,
) -> AsyncIterator[SSEEvent]:
    """Yield status and content events for one research query.

    Nothing is persisted here; ``citations_out`` and ``plan_out`` collect what
    a caller needs to store afterwards.
    """
    orchestrator = orchestrator or SourceOrchestrator()
    synthesizer = synthesizer or ResponseSynthesizer()

    yield streaming.status(StatusType.ANALYZING, "Analyzing your question...")
    analysis, plan = await analyze_intent(query, history)
    if plan_out is not None:
        plan_out.update(
            category=analysis.category,
            sources=plan.sources,
            expected_type=plan.expected_type,
            reasoning=plan.reasoning,
        )

    labels = ", ".join(SOURCE_LABELS.get(s, s) for s in plan.sources)
    yield streaming.status(StatusType.SEARCHING, f"Searching {labels}...", sources=plan.sources)
    results = await orchestrator.execute_source_plan(plan)

    yield streaming.status(StatusType.SYNTHESIZING, "Synthesizing answer...")
    async for text in synthesizer.synthesize_stream(query, results, history, citations_out=citations_out):
        yield streaming.content(text)


async def handle_agentic_request(
    user_id: str,
    conversation_id: str,
    message: str,
    user_message_id: str | None = None,
    assistant_message_id: str | None = None,
) -> AsyncIterator[SSEEvent]:
    """Stream one research turn for an authenticated user and persist the answer.

    The conversation is assumed to belong to ``user_id`` (checked by the route).
    Failures are reported as an ``error`` event and recorded on the assistant
    message instead of raised.
    """
    started = time.monotonic()
    history = [
        {"role": m["role"], "content": m["content"]}
        for m in await db.get_messages(conversation_id)
        if m["id"] not in (user_message_id, assistant_message_id) and m["content"]
    ]

    if not user_message_id:
        user_message = await db.add_message(conversation_id, "user", message)
        user_message_id = user_message["id"]
    if not assistant_message_id:
        assistant_message = await db.add_message(conversation_id, "assistant", "")
        assistant_message_id = assistant_message["id"]

    yield streaming.meta(userMessageId=user_message_id, assistantMessageId=assistant_message_id)

    citations: list[Citation] = []
    plan: dict[str, Any] = {}
    chunks: list[str] = []
    try:
        async for event in run_research(message, history, citations_out=citations, plan_out=plan):
            if event.event == EventType.CONTENT:
                chunks.append(event.data["content"])
            yield event
    except Exception as exc:
        logger.exception(f"[handle_agentic_request] Research failed: {exc}")
        await db.update_message(
            assistant_message_id,
            content=f"Research failed: {exc}",
            reasoning_metadata={"agentic": True, "error": str(exc), **plan},
        )
        yield streaming.error(str(exc) or "Research failed")
        return

    guarded = validate_output("".join(chunks))
    await db.update_message(
        assistant_message_id,
        content=guarded.redacted_output,
        reasoning_metadata={
            "agentic": True,
            "citations": [c.to_dict() for c in citations],
            **plan,
        },
    )
    log_event(
        event_type="agentic_research_complete",
        message="Agentic research completed",
        user_id=user_id,
        conversation_id=conversation_id,
        sources=plan.get("sources"),
        citations=len(citations),
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    yield streaming.meta(citations=[c.to_dict() for c in citations])
    yield streaming.status(StatusType.COMPLETE, "Done")
