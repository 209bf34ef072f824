"""Rewrite AI-sounding text so it reads as human-written.

Long input is split on paragraph (then sentence) boundaries and each piece is
streamed through the model in turn.
"""

from __future__ import annotations

import re
from typing import AsyncIterator

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.models.events import SSEEvent, StatusType
from rynk.services import streaming
from rynk.services.prompt_store import render_prompt

MAX_CHARS = 50000
MAX_CHUNK_SIZE = 2500

_PARAGRAPH_BREAK = re.compile(r"\n\n+")
_SENTENCE = re.compile(r"[^.!?]+[.!?]+\s*")


def chunk_text(text: str, max_size: int = MAX_CHUNK_SIZE) -> list[str]:
    chunks: list[str] = []
    current = ""

    for paragraph in _PARAGRAPH_BREAK.split(text):
        if len(paragraph) > max_size:
            if current:
                chunks.append(current.strip())
                current = ""
            for sentence in _SENTENCE.findall(paragraph) or [paragraph]:
                if len(current) + len(sentence) > max_size:
                    if current:
                        chunks.append(current.strip())
                    current = sentence
                else:
                    current += sentence
        elif current and len(current) + len(paragraph) + 2 > max_size:
            chunks.append(current.strip())
            current = paragraph
        else:
            current += ("\n\n" if current else "") + paragraph

    if current.strip():
        chunks.append(current.strip())
    return chunks


async def humanize_stream(text: str) -> AsyncIterator[SSEEvent]:
    """Progress status per chunk, the rewritten text as content, then a complete status."""
    chunks = chunk_text(text)
    total = len(chunks)
    logger.info(f"[Humanizer] Processing {total} chunks")

    for index, chunk in enumerate(chunks):
        yield streaming.status(
            StatusType.SYNTHESIZING,
            f"Processing chunk {index + 1} of {total}",
            chunk_index=index,
            total_chunks=total,
        )
        messages = [
            {"role": "system", "content": render_prompt("tools.humanizer")},
            {"role": "user", "content": chunk},
        ]
        async with llm_client.groq().stream(messages, model=settings.groq_tools_model, caller="humanizer") as reply:
            async for piece in reply.text_stream:
                yield streaming.content(piece)
        if index < total - 1:
            yield streaming.content("\n\n")

    yield streaming.status(StatusType.COMPLETE, "Humanization complete")
