"""Model-assisted repair of Mermaid diagram syntax."""

from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.services import database as db
from rynk.services.prompt_store import render_prompt

_MERMAID_BLOCK = re.compile(r"```mermaid\n[\s\S]*?\n```")


@dataclass
class MermaidFixResult:
    fixed: bool
    code: str


def strip_fences(code: str) -> str:
    code = re.sub(r"^```mermaid\n?", "", code, flags=re.I)
    code = re.sub(r"^```\n?", "", code)
    code = re.sub(r"\n?```$", "", code)
    return code.strip()


def replace_block(content: str, original_code: str, fixed_code: str) -> str:
    """Swap the first fenced mermaid block whose code equals ``original_code``."""
    target = original_code.strip()
    for match in _MERMAID_BLOCK.finditer(content):
        block = match.group(0)
        inner = re.sub(r"\n?```$", "", re.sub(r"```mermaid\n?", "", block, count=1)).strip()
        if inner == target:
            return content[: match.start()] + f"```mermaid\n{fixed_code}\n```" + content[match.end():]
    return content


async def _persist_fix(message_id: str, conversation_id: str, code: str, fixed_code: str) -> None:
    try:
        message = await db.get_message(message_id)
        if not message or message["conversation_id"] != conversation_id or not message["content"]:
            return
        updated = replace_block(message["content"], code, fixed_code)
        if updated != message["content"]:
            await db.update_message(message_id, content=updated)
            logger.info(f"[mermaid] Updated message {message_id} with fixed diagram")
    except Exception as exc:
        logger.error(f"[mermaid] Failed to update DB: {exc}")


async def fix_mermaid(
    code: str,
    message_id: str | None = None,
    conversation_id: str | None = None,
) -> MermaidFixResult:
    """Ask the model for corrected code and optionally write it back into the stored message."""
    reply = await llm_client.groq().complete(
        [
            {"role": "system", "content": render_prompt("mermaid.fix_system")},
            {"role": "user", "content": render_prompt("mermaid.fix_user", code=code)},
        ],
        model=settings.groq_tools_model,
        temperature=0,
        max_tokens=4000,
        caller="mermaid_fix",
    )
    fixed_code = strip_fences(reply or code)
    was_fixed = fixed_code != code.strip()

    if was_fixed and message_id and conversation_id:
        await _persist_fix(message_id, conversation_id, code, fixed_code)

    return MermaidFixResult(fixed=was_fixed, code=fixed_code)
