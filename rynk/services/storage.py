"""S3-compatible object storage (Cloudflare R2 in production) via boto3.

boto3 is blocking, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import boto3
import botocore.config
from botocore.exceptions import ClientError
from loguru import logger

from rynk.config import settings

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass
class StoredObject:
    body: bytes
    content_type: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    etag: str | None = None

    def headers(self) -> dict[str, str]:
        pairs = {
            "Content-Type": self.content_type,
            "Content-Disposition": self.content_disposition,
            "Content-Encoding": self.content_encoding,
            "Content-Language": self.content_language,
            "ETag": self.etag,
        }
        return {k: v for k, v in pairs.items() if v}


@lru_cache(maxsize=1)
def get_client() -> Any:
    """S3 client with Signature V4, pointed at the configured endpoint."""
    return boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url or None,
        aws_access_key_id=settings.storage_access_key_id or None,
        aws_secret_access_key=settings.storage_secret_access_key or None,
        region_name=settings.storage_region,
        config=botocore.config.Config(signature_version="s3v4"),
    )


def sanitize_filename(name: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", name)


def build_key(user_id: str, file_name: str, now_ms: int | None = None) -> str:
    """``<user_id>/<epoch_ms>-<sanitized name>``."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{user_id}/{stamp}-{sanitize_filename(file_name)}"


def _put(key: str, data: bytes, content_type: str | None) -> None:
    extra: dict[str, Any] = {}
    if content_type:
        extra["ContentType"] = content_type
    get_client().put_object(Bucket=settings.storage_bucket, Key=key, Body=data, **extra)


def _get(key: str) -> StoredObject | None:
    try:
        response = get_client().get_object(Bucket=settings.storage_bucket, Key=key)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code in ("NoSuchKey", "404", "NotFound"):
            return None
        raise
    return StoredObject(
        body=response["Body"].read(),
        content_type=response.get("ContentType"),
        content_disposition=response.get("ContentDisposition"),
        content_encoding=response.get("ContentEncoding"),
        content_language=response.get("ContentLanguage"),
        etag=response.get("ETag"),
    )


async def upload_file(key: str, data: bytes, content_type: str | None = None) -> str:
    await asyncio.to_thread(_put, key, data, content_type)
    logger.info(f"[Storage] Uploaded {key} ({len(data)} bytes)")
    return key


async def get_file(key: str) -> StoredObject | None:
    return await asyncio.to_thread(_get, key)


async def delete_file(key: str) -> None:
    await asyncio.to_thread(get_client().delete_object, Bucket=settings.storage_bucket, Key=key)
    logger.info(f"[Storage] Deleted {key}")


def public_url(key: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/api/files/{key}"
