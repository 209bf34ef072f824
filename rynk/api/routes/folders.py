from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from rynk.api.deps import get_authenticated_user, owned_conversation, owned_folder
from rynk.errors import ApiError
from rynk.models.schemas import FolderConversationRequest, FolderCreate, FolderUpdate
from rynk.services import database as db

router = APIRouter(prefix="/api/mobile/folders", tags=["folders"])


@router.get("")
async def list_folders(user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"folders": await db.get_folders(user["id"])}


@router.post("")
async def create_folder(body: FolderCreate, user: dict[str, Any] = Depends(get_authenticated_user)):
    if not body.name.strip():
        raise ApiError(400, "Name is required")
    for conversation_id in body.conversation_ids:
        await owned_conversation(conversation_id, user)
    folder = await db.create_folder(
        user["id"],
        body.name.strip(),
        description=body.description,
        conversation_ids=body.conversation_ids,
    )
    return {"folder": folder}


@router.patch("/{folder_id}")
async def update_folder(
    folder_id: str,
    body: FolderUpdate,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_folder(folder_id, user)
    folder = await db.update_folder(folder_id, **body.model_dump(exclude_none=True, exclude={"conversation_ids"}))
    if body.conversation_ids is not None:
        for conversation_id in body.conversation_ids:
            await owned_conversation(conversation_id, user)
        await db.set_folder_conversations(folder_id, body.conversation_ids)
    return {"folder": folder}


@router.delete("/{folder_id}")
async def delete_folder(folder_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    await owned_folder(folder_id, user)
    await db.delete_folder(folder_id)
    return {"success": True}


@router.post("/{folder_id}/conversations")
async def add_conversation(
    folder_id: str,
    body: FolderConversationRequest,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    if not body.conversation_id:
        raise ApiError(400, "Conversation ID required")
    await owned_folder(folder_id, user)
    await owned_conversation(body.conversation_id, user)
    await db.add_conversation_to_folder(folder_id, body.conversation_id)
    return {"success": True}


@router.delete("/{folder_id}/conversations/{conversation_id}")
async def remove_conversation(
    folder_id: str,
    conversation_id: str,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_folder(folder_id, user)
    await db.remove_conversation_from_folder(folder_id, conversation_id)
    return {"success": True}
