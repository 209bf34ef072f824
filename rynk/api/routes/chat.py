from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from rynk.api.deps import get_authenticated_user, owned_conversation
from rynk.errors import ApiError
from rynk.models.schemas import ChatRequest, TitleRequest
from rynk.services import database as db
from rynk.services.chat_service import handle_chat_request
from rynk.services.title_service import generate_title

router = APIRouter(prefix="/api/mobile/chat", tags=["chat"])

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.post("")
async def chat(body: ChatRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Stream one chat turn as line-delimited JSON status events and raw text."""
    if not (body.message or body.message_id) or not body.conversation_id:
        raise ApiError(400, "Either 'message' or 'message_id' and 'conversation_id' are required")

    turn = await handle_chat_request(
        user["id"],
        body.conversation_id,
        content=body.message,
        message_id=body.message_id,
        attachments=body.attachments,
        referenced_conversations=body.referenced_conversations,
        referenced_folders=body.referenced_folders,
    )
    return StreamingResponse(turn.stream.iter_bytes(), media_type=STREAM_MEDIA_TYPE, headers=turn.headers)


@router.post("/title")
async def title(body: TitleRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    if not body.conversation_id or not body.message_content:
        raise ApiError(400, "conversation_id and message_content are required")
    await owned_conversation(body.conversation_id, user)

    generated = await generate_title(body.message_content)
    if not generated:
        raise ApiError(500, "Failed to generate title")

    await db.update_conversation(body.conversation_id, title=generated)
    return {"title": generated}
