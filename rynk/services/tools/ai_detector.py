from __future__ import annotations

from typing import Any

from rynk.services.tools.base import run_json


async def detect_ai_content(text: str) -> dict[str, Any]:
    """Return ``{"verdict", "confidence", "analysis", "signals"}``."""
    return await run_json(
        "tools.ai_detector",
        f"Analyze this text:\n\n{text}",
        temperature=0.2,
        caller="ai_detector",
        parse_error="Failed to parse AI detection response",
    )
