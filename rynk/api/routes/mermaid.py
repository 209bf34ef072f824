from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends

from rynk.api.deps import get_authenticated_user, owned_conversation
from rynk.errors import ApiError
from rynk.models.schemas import MermaidFixRequest
from rynk.services.mermaid import fix_mermaid

router = APIRouter(prefix="/api/mermaid", tags=["mermaid"])


@router.post("/fix")
async def fix(body: MermaidFixRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Return corrected diagram code; with both ids the stored message is patched too."""
    if not body.code or not body.code.strip():
        raise ApiError(400, "code is required")

    message_id = conversation_id = None
    if body.message_id and body.conversation_id:
        await owned_conversation(body.conversation_id, user)
        message_id, conversation_id = body.message_id, body.conversation_id

    result = await fix_mermaid(body.code, message_id, conversation_id)
    return asdict(result)
