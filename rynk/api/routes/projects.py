from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger

from rynk.api.deps import get_authenticated_user, owned_project
from rynk.errors import ApiError
from rynk.models.schemas import ProjectCreate, ProjectUpdate
from rynk.services import database as db
from rynk.services import storage
from rynk.services.chat_service import object_key_from_url

router = APIRouter(prefix="/api/mobile/projects", tags=["projects"])


@router.get("")
async def list_projects(user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"projects": await db.get_projects(user["id"])}


@router.post("")
async def create_project(body: ProjectCreate, user: dict[str, Any] = Depends(get_authenticated_user)):
    if not body.name.strip():
        raise ApiError(400, "Name is required")
    project = await db.create_project(
        user["id"],
        body.name.strip(),
        description=body.description,
        instructions=body.instructions,
        attachments=body.attachments,
    )
    return {"project": project}


@router.get("/{project_id}")
async def get_project(project_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    return {"project": await owned_project(project_id, user)}


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    body: ProjectUpdate,
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    await owned_project(project_id, user)
    return {"project": await db.update_project(project_id, **body.model_dump(exclude_none=True))}


@router.delete("/{project_id}")
async def delete_project(project_id: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    project = await owned_project(project_id, user)
    await db.delete_project(project_id)

    # Only objects under the owner's key prefix are removed
    for attachment in project.get("attachments") or []:
        key = object_key_from_url(attachment.get("url") or "")
        if not key.startswith(f"{user['id']}/"):
            continue
        try:
            await storage.delete_file(key)
        except Exception as exc:
            logger.error(f"[Projects] Failed to delete attachment {key}: {exc}")
    return {"success": True}
