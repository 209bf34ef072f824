"""Decides whether a chat turn needs extended reasoning and/or web search."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.services.prompt_store import render_prompt

REASONING_MODES = ("auto", "on", "online", "off")


@dataclass
class ReasoningDetection:
    needs_reasoning: bool = False
    needs_web_search: bool = False
    confidence: float = 0.5
    reasoning: str = ""
    detected_types: dict[str, bool] = field(default_factory=dict)


async def detect_reasoning(query: str) -> ReasoningDetection:
    """Classify a query with a small JSON-mode model; falls back to no reasoning."""
    try:
        result = await llm_client.groq().complete_json(
            [
                {"role": "system", "content": render_prompt("reasoning.classifier")},
                {"role": "user", "content": query},
            ],
            model=settings.groq_classifier_model,
            temperature=0,
            max_tokens=200,
            caller="reasoning_detector",
        )
    except Exception as exc:
        logger.error(f"[detect_reasoning] Error: {exc}")
        return ReasoningDetection(reasoning="Detection error - defaulting to no reasoning")

    return ReasoningDetection(
        needs_reasoning=bool(result.get("needs_reasoning")),
        needs_web_search=bool(result.get("needs_web_search")),
        confidence=float(result.get("confidence") or 0.5),
        reasoning=str(result.get("reasoning") or ""),
        detected_types=dict(result.get("detected_types") or {}),
    )


def resolve_reasoning_mode(mode: str, detection: ReasoningDetection | None) -> tuple[bool, bool]:
    """Return ``(use_reasoning, use_web_search)`` for a user-selected mode."""
    if mode == "off":
        return False, False
    if mode == "on":
        return True, False
    if mode == "online":
        return True, True
    if detection is None:
        return False, False
    return detection.needs_reasoning, detection.needs_web_search


def get_reasoning_model(use_reasoning: bool) -> str | None:
    """Groq model to use for a reasoning turn, or None for the provider default."""
    return settings.groq_reasoning_model if use_reasoning else None
