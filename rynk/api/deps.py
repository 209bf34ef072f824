from __future__ import annotations

from typing import Any

from fastapi import Request

from rynk.errors import NotFoundError, UnauthorizedError
from rynk.services import database as db
from rynk.services.guest import get_guest_id_from_request, get_or_create_guest_session
from rynk.services.mobile_auth import get_authenticated_user, get_optional_user

__all__ = [
    "get_authenticated_user",
    "get_optional_user",
    "require_guest_id",
    "require_guest_session",
    "owned_conversation",
    "owned_folder",
    "owned_project",
    "owned_sub_chat",
]


def require_guest_id(request: Request) -> str:
    guest_id = get_guest_id_from_request(request)
    if not guest_id:
        raise UnauthorizedError("Guest ID required")
    return guest_id


async def require_guest_session(request: Request) -> dict[str, Any]:
    """Guest id from the request plus its (possibly freshly created) session."""
    require_guest_id(request)
    return await get_or_create_guest_session(request)


async def owned_conversation(conversation_id: str, user: dict[str, Any]) -> dict[str, Any]:
    conversation = await db.get_conversation(conversation_id)
    if conversation is None or conversation["user_id"] != user["id"]:
        raise NotFoundError("Conversation not found")
    return conversation


async def owned_folder(folder_id: str, user: dict[str, Any]) -> dict[str, Any]:
    folder = await db.get_folder(folder_id)
    if folder is None or folder["user_id"] != user["id"]:
        raise NotFoundError("Folder not found")
    return folder


async def owned_project(project_id: str, user: dict[str, Any]) -> dict[str, Any]:
    project = await db.get_project(project_id)
    if project is None or project["user_id"] != user["id"]:
        raise NotFoundError("Project not found")
    return project


async def owned_sub_chat(sub_chat_id: str, user: dict[str, Any]) -> dict[str, Any]:
    """Sub-chats are owned through their parent conversation."""
    sub_chat = await db.get_sub_chat(sub_chat_id)
    if sub_chat is None:
        raise NotFoundError("Sub-chat not found")
    await owned_conversation(sub_chat["conversation_id"], user)
    return sub_chat
