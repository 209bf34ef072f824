from __future__ import annotations

from rynk import llm_client
from rynk.services.prompt_store import render_prompt

_QUOTES = "\"'"


def clean_title(raw: str) -> str:
    title = raw.strip()
    if title[:1] in _QUOTES:
        title = title[1:]
    if title[-1:] in _QUOTES:
        title = title[:-1]
    return title.strip()


async def generate_title(message_content: str) -> str:
    """A 3-7 word title for a conversation; empty string when the model returns nothing."""
    reply = await llm_client.get_ai_provider().complete(
        [
            {"role": "system", "content": render_prompt("chat.title")},
            {"role": "user", "content": render_prompt("chat.title_user", content=message_content)},
        ],
        temperature=0.3,
        max_tokens=30,
        caller="title_generation",
    )
    return clean_title(reply) if reply else ""
