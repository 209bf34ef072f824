"""Guest endpoints. Every route is scoped to the caller's ``guest_`` id."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from rynk.api.deps import require_guest_id, require_guest_session
from rynk.config import settings
from rynk.errors import ApiError, NotFoundError
from rynk.models.schemas import (
    FolderConversationRequest,
    FolderCreate,
    FolderUpdate,
    GuestChatRequest,
    GuestConversationUpdate,
    MessageDeleteRequest,
    SubChatCreate,
    SubChatMessage,
)
from rynk.services import guest_store
from rynk.services import sub_chat_service
from rynk.services.guest import get_guest_id_from_request, get_guest_session
from rynk.services.guest_chat_service import handle_guest_chat_request

router = APIRouter(prefix="/api/guest", tags=["guest"])


async def _conversation(guest_id: str, conversation_id: str) -> dict[str, Any]:
    conversation = await guest_store.get_conversation(guest_id, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def _folder(guest_id: str, folder_id: str) -> dict[str, Any]:
    folder = await guest_store.get_folder(guest_id, folder_id)
    if folder is None:
        raise NotFoundError("Folder not found")
    return folder


async def _sub_chat(guest_id: str, sub_chat_id: str) -> dict[str, Any]:
    sub_chat = await guest_store.get_sub_chat(guest_id, sub_chat_id)
    if sub_chat is None:
        raise NotFoundError("Sub-chat not found")
    return sub_chat


# --- Session ---


@router.get("/status")
async def status(request: Request):
    guest_id = get_guest_id_from_request(request)
    if not guest_id:
        raise NotFoundError("No guest session")
    session = await get_guest_session(guest_id)
    if session is None:
        raise NotFoundError("Guest session not found")
    return {
        "guest_id": session["guest_id"],
        "credits_remaining": session["credits_remaining"],
        "credits_limit": settings.guest_credits_limit,
        "message_count": session["message_count"],
        "created_at": session["created_at"],
        "last_active": session["last_active"],
    }


@router.post("/chat")
async def chat(
    body: GuestChatRequest,
    request: Request,
    session: dict[str, Any] = Depends(require_guest_session),
):
    """Stream a guest chat turn; the client may pre-assign both message ids via headers."""
    if not (body.message or body.message_id) or not body.conversation_id:
        raise ApiError(400, "Either 'message' or 'message_id' and 'conversation_id' are required")

    turn = await handle_guest_chat_request(
        session["guest_id"],
        body.conversation_id,
        content=body.message,
        message_id=body.message_id,
        attachments=body.attachments,
        referenced_conversations=body.referenced_conversations,
        referenced_folders=body.referenced_folders,
        user_message_id=request.headers.get("x-user-message-id"),
        assistant_message_id=request.headers.get("x-assistant-message-id"),
        reasoning_mode=body.use_reasoning,
    )
    return StreamingResponse(turn.stream.iter_bytes(), media_type="text/plain; charset=utf-8", headers=turn.headers)


@router.get("/tags")
async def tags(request: Request):
    guest_id = get_guest_id_from_request(request)
    if not guest_id:
        return {"tags": []}
    return {"tags": await guest_store.get_all_tags(guest_id)}


# --- Conversations ---


@router.get("/conversations")
async def list_conversations(guest_id: str = Depends(require_guest_id)):
    return {"conversations": await guest_store.list_conversations(guest_id)}


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, guest_id: str = Depends(require_guest_id)):
    return {"conversation": await _conversation(guest_id, conversation_id)}


@router.patch("/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    body: GuestConversationUpdate,
    guest_id: str = Depends(require_guest_id),
):
    updated = await guest_store.update_conversation(guest_id, conversation_id, **body.model_dump(exclude_none=True))
    if not updated:
        raise NotFoundError("Conversation not found")
    return {"success": True}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, guest_id: str = Depends(require_guest_id)):
    if not await guest_store.delete_conversation(guest_id, conversation_id):
        raise NotFoundError("Conversation not found")
    return {"success": True}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    cursor: datetime | None = None,
    guest_id: str = Depends(require_guest_id),
):
    """Cursor-paginated, newest page first; ``next_cursor`` walks back in time."""
    await _conversation(guest_id, conversation_id)
    messages, next_cursor = await guest_store.get_messages_page(guest_id, conversation_id, limit, cursor)
    return {"messages": messages, "next_cursor": next_cursor}


@router.delete("/conversations/{conversation_id}/messages")
async def delete_messages(
    conversation_id: str,
    body: MessageDeleteRequest | None = None,
    guest_id: str = Depends(require_guest_id),
):
    await _conversation(guest_id, conversation_id)
    deleted = await guest_store.delete_messages(guest_id, conversation_id, body.message_ids if body else None)
    return {"success": True, "deleted": deleted}


# --- Folders ---


@router.get("/folders")
async def list_folders(guest_id: str = Depends(require_guest_id)):
    return {"folders": await guest_store.list_folders(guest_id)}


@router.post("/folders", status_code=201)
async def create_folder(body: FolderCreate, guest_id: str = Depends(require_guest_id)):
    if not body.name.strip():
        raise ApiError(400, "Folder name is required")
    folder = await guest_store.create_folder(guest_id, body.name.strip(), body.description)
    return {"folder": folder}


@router.get("/folders/{folder_id}")
async def get_folder(folder_id: str, guest_id: str = Depends(require_guest_id)):
    return {"folder": await _folder(guest_id, folder_id)}


@router.patch("/folders/{folder_id}")
async def update_folder(folder_id: str, body: FolderUpdate, guest_id: str = Depends(require_guest_id)):
    if not await guest_store.update_folder(guest_id, folder_id, name=body.name, description=body.description):
        raise NotFoundError("Folder not found")
    return {"success": True}


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, guest_id: str = Depends(require_guest_id)):
    if not await guest_store.delete_folder(guest_id, folder_id):
        raise NotFoundError("Folder not found")
    return {"success": True}


@router.post("/folders/{folder_id}/conversations", status_code=201)
async def add_folder_conversation(
    folder_id: str,
    body: FolderConversationRequest,
    guest_id: str = Depends(require_guest_id),
):
    if not body.conversation_id:
        raise ApiError(400, "Conversation ID required")
    await _folder(guest_id, folder_id)
    await _conversation(guest_id, body.conversation_id)
    await guest_store.add_conversation_to_folder(folder_id, body.conversation_id)
    return {"success": True}


@router.delete("/folders/{folder_id}/conversations/{conversation_id}")
async def remove_folder_conversation(
    folder_id: str,
    conversation_id: str,
    guest_id: str = Depends(require_guest_id),
):
    await _folder(guest_id, folder_id)
    await guest_store.remove_conversation_from_folder(folder_id, conversation_id)
    return {"success": True}


# --- Sub-chats ---


@router.get("/sub-chats")
async def list_sub_chats(conversation_id: str | None = None, guest_id: str = Depends(require_guest_id)):
    if not conversation_id:
        raise ApiError(400, "conversation_id is required")
    return {"sub_chats": await guest_store.list_sub_chats(guest_id, conversation_id)}


@router.post("/sub-chats", status_code=201)
async def create_sub_chat(body: SubChatCreate, guest_id: str = Depends(require_guest_id)):
    if not body.conversation_id or not body.source_message_id or not body.quoted_text:
        raise ApiError(400, "conversation_id, source_message_id and quoted_text are required")
    await _conversation(guest_id, body.conversation_id)
    sub_chat = await guest_store.create_sub_chat(
        guest_id,
        body.conversation_id,
        body.source_message_id,
        body.quoted_text,
        body.source_message_content,
    )
    return {"sub_chat": sub_chat}


@router.get("/sub-chats/{sub_chat_id}")
async def get_sub_chat(sub_chat_id: str, guest_id: str = Depends(require_guest_id)):
    return {"sub_chat": await _sub_chat(guest_id, sub_chat_id)}


@router.delete("/sub-chats/{sub_chat_id}")
async def delete_sub_chat(sub_chat_id: str, guest_id: str = Depends(require_guest_id)):
    if not await guest_store.delete_sub_chat(guest_id, sub_chat_id):
        raise NotFoundError("Sub-chat not found")
    return {"success": True}


@router.post("/sub-chats/{sub_chat_id}/message")
async def send_sub_chat_message(
    sub_chat_id: str,
    body: SubChatMessage,
    guest_id: str = Depends(require_guest_id),
):
    if not body.content or not body.content.strip():
        raise ApiError(400, "Message content is required")
    sub_chat = await _sub_chat(guest_id, sub_chat_id)

    messages = await sub_chat_service.reply(sub_chat, body.content)
    await guest_store.update_sub_chat_messages(sub_chat_id, messages)
    return {"sub_chat": {**sub_chat, "messages": messages}}
