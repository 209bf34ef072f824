from __future__ import annotations

from typing import Any

from rynk.config import settings
from rynk.services.tools.base import run_json


async def analyze_argument(argument: str) -> dict[str, Any]:
    """Stress-test an argument; uses the reasoning model rather than the tools model."""
    parsed = await run_json(
        "tools.devils_advocate",
        f"Analyze this argument:\n\n{argument}",
        temperature=0.6,
        caller="devils_advocate",
        parse_error="Failed to parse argument analysis response",
        model=settings.groq_reasoning_model,
    )
    return {
        "critique": parsed.get("critique") or "Analysis failed to generate.",
        "fallacies": parsed.get("fallacies") or [],
        "counter_points": parsed.get("counter_points") or [],
        "score": parsed.get("score") or 50,
    }
