from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from rynk.api.deps import get_authenticated_user, owned_conversation
from rynk.errors import ApiError, NotFoundError
from rynk.models.schemas import AgenticChatRequest
from rynk.services import database as db
from rynk.services.agentic.research import handle_agentic_request

router = APIRouter(prefix="/api/agentic-chat", tags=["research"])


@router.post("")
async def agentic_chat(body: AgenticChatRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Multi-source research turn streamed as server-sent events."""
    if not body.message or not body.conversation_id:
        raise ApiError(400, "Missing required fields: message, conversation_id")
    await owned_conversation(body.conversation_id, user)

    for message_id in (body.user_message_id, body.assistant_message_id):
        if message_id:
            message = await db.get_message(message_id)
            if message is None or message["conversation_id"] != body.conversation_id:
                raise NotFoundError(f"Message {message_id} not found")

    async def event_generator():
        async for event in handle_agentic_request(
            user["id"],
            body.conversation_id,
            body.message,
            user_message_id=body.user_message_id,
            assistant_message_id=body.assistant_message_id,
        ):
            yield event.to_sse()

    return EventSourceResponse(event_generator())
