"""Shared plumbing for the single-prompt text tools."""

from __future__ import annotations

import json
from typing import Any

from rynk import llm_client
from rynk.config import settings
from rynk.services.prompt_store import render_prompt


async def run_text(
    prompt_key: str,
    user_content: str,
    *,
    temperature: float,
    caller: str,
    model: str | None = None,
    **prompt_values: Any,
) -> str:
    """Render the tool's system prompt and return the model's plain-text reply."""
    return await llm_client.groq().complete(
        [
            {"role": "system", "content": render_prompt(prompt_key, **prompt_values)},
            {"role": "user", "content": user_content},
        ],
        model=model or settings.groq_tools_model,
        temperature=temperature,
        caller=caller,
    )


async def run_json(
    prompt_key: str,
    user_content: str,
    *,
    temperature: float,
    caller: str,
    parse_error: str,
    model: str | None = None,
    **prompt_values: Any,
) -> dict[str, Any]:
    """Like ``run_text`` in JSON mode; an unparseable reply raises ValueError(parse_error)."""
    text = await llm_client.groq().complete(
        [
            {"role": "system", "content": render_prompt(prompt_key, **prompt_values)},
            {"role": "user", "content": user_content},
        ],
        model=model or settings.groq_tools_model,
        temperature=temperature,
        json_mode=True,
        caller=caller,
    )
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(parse_error) from exc
    if not isinstance(parsed, dict):
        raise ValueError(parse_error)
    return parsed


def word_count(text: str) -> int:
    return len(text.split())
