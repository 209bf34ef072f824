from __future__ import annotations

from typing import Any

from rynk.services.tools.base import run_json

TONE_INSTRUCTIONS = {
    "neutral": "Keep the original tone while fixing errors.",
    "professional": "Adjust to a professional, business-appropriate tone.",
    "casual": "Keep a friendly, conversational tone.",
    "academic": "Use formal academic language suitable for papers and research.",
}
TONES = tuple(TONE_INSTRUCTIONS)


async def check_grammar(text: str, tone: str = "neutral") -> dict[str, Any]:
    """Return ``{"corrected", "issues", "score", "tone"}``."""
    parsed = await run_json(
        "tools.grammar",
        text,
        temperature=0.2,
        caller="grammar",
        parse_error="Failed to parse grammar check response",
        tone_instruction=TONE_INSTRUCTIONS.get(tone, TONE_INSTRUCTIONS["neutral"]),
    )
    return {
        "corrected": parsed.get("corrected", text),
        "issues": parsed.get("issues") or [],
        "score": parsed.get("score", 100),
        "tone": tone,
    }
