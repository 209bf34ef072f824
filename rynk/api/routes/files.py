from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response
from loguru import logger

from rynk.api.deps import get_authenticated_user
from rynk.config import settings
from rynk.errors import ApiError, NotFoundError
from rynk.services import database as db
from rynk.services import storage

router = APIRouter(tags=["files"])


@router.get("/api/files/{key:path}")
async def download(key: str, user: dict[str, Any] = Depends(get_authenticated_user)):
    # Keys are namespaced by owner; another user's key looks missing
    if not key.startswith(f"{user['id']}/"):
        raise NotFoundError("File not found")
    stored = await storage.get_file(key)
    if stored is None:
        raise NotFoundError("File not found")
    return Response(content=stored.body, headers=stored.headers())


@router.post("/api/mobile/upload")
async def upload(
    file: UploadFile | None = File(default=None),
    user: dict[str, Any] = Depends(get_authenticated_user),
):
    """Store a multipart ``file`` under ``<user_id>/<epoch_ms>-<name>`` and record its metadata."""
    if file is None or not file.filename:
        raise ApiError(400, "No file provided")

    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ApiError(400, f"File too large. Maximum size is {limit_mb}MB")

    key = storage.build_key(user["id"], file.filename)
    content_type = file.content_type or "application/octet-stream"
    try:
        await storage.upload_file(key, data, content_type)
        await db.create_attachment_metadata(user["id"], file.filename, content_type, len(data), key)
    except Exception as exc:
        logger.error(f"[Upload] Failed to store {file.filename}: {exc}")
        raise ApiError(500, "Upload failed") from exc

    logger.info(f"[Upload] File uploaded: {file.filename} -> {key}")
    return {
        "url": storage.public_url(key),
        "name": file.filename,
        "type": content_type,
        "size": len(data),
    }
