from __future__ import annotations

from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from loguru import logger

from rynk.api.deps import get_authenticated_user, owned_conversation, owned_sub_chat
from rynk.errors import ApiError
from rynk.models.schemas import SubChatAppend, SubChatCreate, SubChatMessage, SubChatStreamRequest
from rynk.services import database as db
from rynk.services import sub_chat_service

router = APIRouter(prefix="/api/sub-chats", tags=["sub-chats"])


async def _spend_credit(user_id: str) -> None:
    if await db.get_user_credits(user_id) <= 0:
        raise ApiError(403, "Insufficient credits")
    await db.update_user_credits(user_id, -1)


@router.get("")
async def list_sub_chats(
    conversation_id: str | None = None,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    if not conversation_id:
        raise ApiError(400, "conversation_id is required")
    await owned_conversation(conversation_id, user)
    return {"sub_chats": await db.get_sub_chats(conversation_id)}


@router.post("")
async def create_sub_chat(body: SubChatCreate, user: dict[str, Any] = Depends(get_authenticated_user)):
    if not body.conversation_id or not body.source_message_id or not body.quoted_text:
        raise ApiError(400, "conversation_id, source_message_id and quoted_text are required")
    await owned_conversation(body.conversation_id, user)
    sub_chat = await db.create_sub_chat(
        body.conversation_id,
        body.source_message_id,
        body.quoted_text,
        body.source_message_content,
    )
    return {"sub_chat": sub_chat}


@router.post("/chat")
async def stream_sub_chat(body: SubChatStreamRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Stream a plain-text answer to the latest message; the client appends it via ``/messages``."""
    if not body.sub_chat_id:
        raise ApiError(400, "sub_chat_id is required")
    sub_chat = await owned_sub_chat(body.sub_chat_id, user)
    await _spend_credit(user["id"])

    async def body_stream() -> AsyncIterator[str]:
        collected: list[str] = []
        async for text in sub_chat_service.stream_reply(sub_chat, body.quoted_text, collected=collected):
            yield text
        logger.info(f"[SubChat] Streamed {len(''.join(collected))} chars for {sub_chat['id']}")

    return StreamingResponse(body_stream(), media_type="text/plain; charset=utf-8")


@router.get("/{sub_chat_id}")
async def get_sub_chat(sub_chat_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"sub_chat": await owned_sub_chat(sub_chat_id, user)}


@router.delete("/{sub_chat_id}")
async def delete_sub_chat(sub_chat_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    await owned_sub_chat(sub_chat_id, user)
    await db.delete_sub_chat(sub_chat_id)
    return {"success": True}


@router.post("/{sub_chat_id}/messages")
async def append_message(
    sub_chat_id: str,
    body: SubChatAppend,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    """Append a message as-is, without asking the model."""
    if not body.role or not body.content:
        raise ApiError(400, "role and content are required")
    if body.role not in ("user", "assistant"):
        raise ApiError(400, "role must be 'user' or 'assistant'")
    sub_chat = await owned_sub_chat(sub_chat_id, user)

    message = sub_chat_service.new_message(body.role, body.content)
    messages = list(sub_chat.get("messages") or []) + [message]
    await db.update_sub_chat_messages(sub_chat_id, messages)
    return {"message": message, "sub_chat": {**sub_chat, "messages": messages}}


@router.post("/{sub_chat_id}/message")
async def send_message(
    sub_chat_id: str,
    body: SubChatMessage,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    """Send a message and wait for the complete reply."""
    if not body.content or not body.content.strip():
        raise ApiError(400, "Message content is required")
    sub_chat = await owned_sub_chat(sub_chat_id, user)
    await _spend_credit(user["id"])

    messages = await sub_chat_service.reply(sub_chat, body.content)
    await db.update_sub_chat_messages(sub_chat_id, messages)
    return {"sub_chat": {**sub_chat, "messages": messages}}
