from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from rynk.api.deps import get_authenticated_user, owned_conversation
from rynk.errors import ApiError, NotFoundError
from rynk.models.schemas import (
    BranchRequest,
    ConversationCreate,
    ConversationUpdate,
    MessageCreate,
    MessageEditRequest,
    PinRequest,
    VersionSwitchRequest,
)
from rynk.services import database as db

router = APIRouter(prefix="/api/mobile", tags=["conversations"])

MESSAGE_ROLES = ("user", "assistant", "system")


@router.get("/conversations")
async def list_conversations(user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"conversations": await db.get_conversations(user["id"])}


@router.post("/conversations")
async def create_conversation(body: ConversationCreate, user: dict[str, Any] = Depends(get_authenticated_user)):
    if body.project_id:
        project = await db.get_project(body.project_id)
        if project is None or project["user_id"] != user["id"]:
            raise NotFoundError("Project not found")
    conversation = await db.create_conversation(user["id"], title=body.title, project_id=body.project_id)
    return {"conversation": conversation}


@router.post("/conversations/branch")
async def branch_conversation(body: BranchRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Start a new conversation from the history up to (and including) one message."""
    if not body.conversation_id or not body.message_id:
        raise ApiError(400, "Missing conversation_id or message_id")
    conversation = await owned_conversation(body.conversation_id, user)
    branch = await db.branch_conversation(conversation, body.message_id)
    if branch is None:
        raise NotFoundError("Message not found in conversation")
    return {"conversation_id": branch["id"], "title": branch["title"]}


@router.get("/conversations/tags")
async def list_tags(user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"tags": await db.get_all_tags(user["id"])}


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"conversation": await owned_conversation(conversation_id, user)}


@router.patch("/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    body: ConversationUpdate,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_conversation(conversation_id, user)
    updates = body.model_dump(exclude_none=True)
    conversation = await db.update_conversation(conversation_id, **updates)
    return {"conversation": conversation}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    await owned_conversation(conversation_id, user)
    await db.delete_conversation(conversation_id)
    return {"success": True}


@router.put("/conversations/{conversation_id}/pin")
async def pin_conversation(
    conversation_id: str,
    body: PinRequest,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_conversation(conversation_id, user)
    await db.update_conversation(conversation_id, is_pinned=body.is_pinned)
    return {"success": True, "is_pinned": body.is_pinned}


# --- Messages ---


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(conversation_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    await owned_conversation(conversation_id, user)
    return {"messages": await db.get_messages(conversation_id)}


@router.post("/conversations/{conversation_id}/messages")
async def add_message(
    conversation_id: str,
    body: MessageCreate,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    if body.role not in MESSAGE_ROLES:
        raise ApiError(400, f"Invalid role: {body.role}")
    await owned_conversation(conversation_id, user)
    message = await db.add_message(
        conversation_id,
        body.role,
        body.content,
        attachments=body.attachments,
        referenced_conversations=body.referenced_conversations,
        referenced_folders=body.referenced_folders,
    )
    return {"message": message}


@router.delete("/conversations/{conversation_id}/messages/{message_id}")
async def delete_message(
    conversation_id: str,
    message_id: str,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_conversation(conversation_id, user)
    message = await db.get_message(message_id)
    if message is None or message["conversation_id"] != conversation_id:
        raise NotFoundError("Message not found")
    await db.delete_message(message_id)
    return {"success": True}


@router.post("/messages/edit")
async def edit_message(body: MessageEditRequest, user: dict[str, Any] = Depends(get_authenticated_user)):
    """Store the edit as a new version and branch the conversation path at it."""
    if not body.conversation_id or not body.message_id or not body.new_content:
        raise ApiError(400, "Missing required fields")
    await owned_conversation(body.conversation_id, user)
    try:
        result = await db.create_message_version(
            body.conversation_id,
            body.message_id,
            body.new_content,
            attachments=body.attachments,
        )
    except LookupError as exc:
        raise NotFoundError(str(exc)) from exc
    return result


@router.get("/messages/{message_id}/versions")
async def list_versions(message_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    message = await db.get_message(message_id)
    if message is None:
        raise NotFoundError("Message not found")
    await owned_conversation(message["conversation_id"], user)
    return {"versions": await db.get_message_versions(message_id)}


@router.post("/messages/{message_id}/versions")
async def switch_version(
    message_id: str,
    body: VersionSwitchRequest,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    if not body.conversation_id:
        raise ApiError(400, "Missing conversation_id")
    await owned_conversation(body.conversation_id, user)
    try:
        path = await db.switch_message_version(body.conversation_id, message_id)
    except LookupError as exc:
        raise NotFoundError(str(exc)) from exc
    return {"success": True, "conversation_path": path}
