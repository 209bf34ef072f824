"""Authenticated chat turns.

A turn stores the user message (or reuses it when regenerating after an
edit), spends one credit, retrieves context from referenced conversations,
then streams the model reply through a ``StreamManager`` while an empty
assistant message waits to be filled in.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlparse

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.errors import ApiError, NotFoundError
from rynk.models.events import ContextCard, StatusType
from rynk.services import database as db
from rynk.services import storage
from rynk.services.prompt_store import render_prompt
from rynk.services.stream_manager import StreamManager
from rynk.services.vector import search_embeddings

PROJECT_FILES_ACK = "I can see the project context files. I'll use them as reference for our conversation."

_background_tasks: set[asyncio.Task] = set()


@dataclass
class ChatTurn:
    user_message_id: str
    assistant_message_id: str
    stream: StreamManager
    credits_remaining: int | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "X-User-Message-Id": self.user_message_id,
            "X-Assistant-Message-Id": self.assistant_message_id,
        }
        if self.credits_remaining is not None:
            headers["X-Guest-Credits-Remaining"] = str(self.credits_remaining)
        return headers


def _spawn(coro: Any) -> None:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def ref_ids(refs: list[Any] | None) -> list[str]:
    ids = []
    for ref in refs or []:
        ref_id = ref.get("id") if isinstance(ref, dict) else ref
        if ref_id:
            ids.append(str(ref_id))
    return ids


async def embed_message(message_id: str, conversation_id: str, user_id: str, content: str) -> None:
    """Store an embedding for a message. Failures are logged, never raised."""
    if not content or not content.strip():
        return
    try:
        vector = await llm_client.openrouter().embed(content)
        await db.save_embedding(message_id, conversation_id, user_id, content, vector)
    except Exception as exc:
        logger.error(f"[ChatService] Failed to generate embedding for {message_id}: {exc}")


async def build_context(
    user_id: str,
    query: str,
    referenced_conversations: list[Any] | None,
    referenced_folders: list[Any] | None,
) -> tuple[str, list[ContextCard]]:
    """Retrieve snippets from referenced conversations (directly or through folders).

    Returns the context block grouped by conversation title plus one card per
    snippet. Any failure yields an empty context.
    """
    conversation_ids = ref_ids(referenced_conversations)
    folder_ids = ref_ids(referenced_folders)
    try:
        if folder_ids:
            for cid in await db.get_folder_conversation_ids(folder_ids):
                if cid not in conversation_ids:
                    conversation_ids.append(cid)
        if not conversation_ids:
            return "", []

        embeddings = await db.get_embeddings_for_conversations(conversation_ids)
        if not embeddings:
            return "", []

        query_vector = await llm_client.openrouter().embed(query)
        ranked = search_embeddings(
            query_vector,
            embeddings,
            limit=settings.context_search_limit,
            min_score=settings.context_min_score,
        )
        if not ranked:
            return "", []

        titles = {
            c["id"]: c["title"]
            for c in await db.get_conversations_by_ids(sorted({r["conversation_id"] for r in ranked}))
            if c["user_id"] == user_id
        }
    except Exception as exc:
        logger.error(f"[ChatService] Error building context: {exc}")
        return "", []

    grouped: dict[str, list[str]] = {}
    cards: list[ContextCard] = []
    for row in ranked:
        if row["conversation_id"] not in titles:
            continue
        title = titles[row["conversation_id"]] or "Unknown Conversation"
        grouped.setdefault(title, []).append(row["content"])
        cards.append(
            ContextCard(
                source=title,
                snippet=row["content"][:200],
                score=round(row["score"], 4),
                conversation_id=row["conversation_id"],
                conversation_title=title,
            )
        )

    sections = [
        render_prompt(
            "chat.context_section",
            title=title,
            snippets="\n".join(f"- {s}\n" for s in snippets),
        )
        for title, snippets in grouped.items()
    ]
    return "\n\n".join(sections), cards


def object_key_from_url(url: str) -> str:
    """Storage key behind an attachment URL (``/api/files/<key>`` or a bare key)."""
    if "/api/files/" in url:
        key = url.split("/api/files/", 1)[1]
    elif url.startswith(("http://", "https://")):
        key = urlparse(url).path.lstrip("/")
    else:
        key = url
    return unquote(key)


def to_absolute_url(url: str) -> str:
    if url.startswith(("http://", "https://")):
        return url
    path = url if url.startswith("/") else f"/{url}"
    return f"{settings.public_base_url.rstrip('/')}{path}"


async def fetch_image_as_data_url(url: str) -> str | None:
    """Load an image from storage and inline it as a base64 data URL."""
    key = object_key_from_url(url)
    try:
        stored = await storage.get_file(key)
    except Exception as exc:
        logger.error(f"[ChatService] Failed to read image {key}: {exc}")
        return None
    if stored is None:
        logger.warning(f"[ChatService] File not found in storage: {key}")
        return None
    mime_type = stored.content_type or "image/png"
    return f"data:{mime_type};base64,{base64.b64encode(stored.body).decode('ascii')}"


def _image_attachments(attachments: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return [a for a in attachments or [] if (a.get("type") or "").startswith("image/") and a.get("url")]


async def _image_parts(attachments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    parts = []
    for attachment in attachments:
        data_url = await fetch_image_as_data_url(attachment["url"])
        parts.append({"type": "image_url", "image_url": {"url": data_url or to_absolute_url(attachment["url"])}})
    return parts


async def prepare_messages(
    history: list[dict[str, Any]],
    context_text: str,
    project: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Provider messages: project instructions, retrieved context, project images, then history."""
    api_messages: list[dict[str, Any]] = []

    if project and project.get("instructions"):
        api_messages.append(
            {"role": "system", "content": render_prompt("chat.project_instructions", instructions=project["instructions"])}
        )
    if context_text:
        api_messages.append({"role": "system", "content": render_prompt("chat.context_preamble", context=context_text)})

    project_images = _image_attachments((project or {}).get("attachments"))
    if project_images:
        api_messages.append(
            {
                "role": "user",
                "content": [{"type": "text", "text": "These are the project context files for reference:"}]
                + await _image_parts(project_images),
            }
        )
        api_messages.append({"role": "assistant", "content": PROJECT_FILES_ACK})

    for message in history:
        if message["role"] not in ("user", "assistant"):
            continue
        images = _image_attachments(message.get("attachments"))
        if images:
            content: Any = [{"type": "text", "text": message["content"]}] + await _image_parts(images)
        else:
            content = message["content"]
        api_messages.append({"role": message["role"], "content": content})
    return api_messages


def has_image_parts(messages: list[dict[str, Any]]) -> bool:
    return any(isinstance(m["content"], list) for m in messages)


async def handle_chat_request(
    user_id: str,
    conversation_id: str,
    content: str | None = None,
    message_id: str | None = None,
    attachments: list[dict[str, Any]] | None = None,
    referenced_conversations: list[Any] | None = None,
    referenced_folders: list[Any] | None = None,
) -> ChatTurn:
    """Start a chat turn and return the running stream plus the two message ids.

    ``message_id`` selects the edit flow: the stored user message (already
    rewritten by a version edit) is answered again instead of inserting a new one.
    """
    credits = await db.get_user_credits(user_id)
    if credits <= 0:
        raise ApiError(403, "Insufficient credits")

    conversation = await db.get_conversation(conversation_id)
    if conversation is None or conversation["user_id"] != user_id:
        raise NotFoundError("Conversation not found")

    if message_id:
        user_message = await db.get_message(message_id)
        if user_message is None or user_message["conversation_id"] != conversation_id:
            raise NotFoundError(f"User message {message_id} not found")
        query = user_message["content"]
        referenced_conversations = user_message.get("referenced_conversations") or []
        referenced_folders = user_message.get("referenced_folders") or []
    elif content:
        user_message = await db.add_message(
            conversation_id,
            "user",
            content,
            attachments=attachments,
            referenced_conversations=referenced_conversations,
            referenced_folders=referenced_folders,
        )
        query = content
    else:
        raise ApiError(400, "Either content or message_id must be provided")

    await db.update_user_credits(user_id, -1)

    project = None
    if conversation.get("project_id"):
        project = await db.get_project(conversation["project_id"])

    _spawn(embed_message(user_message["id"], conversation_id, user_id, query))

    assistant_message = await db.add_message(conversation_id, "assistant", "")
    logger.info(
        f"[ChatService] Turn started: conversation={conversation_id} "
        f"user_message={user_message['id']} edit={bool(message_id)}"
    )

    async def produce(stream: StreamManager) -> None:
        if referenced_conversations or referenced_folders:
            stream.send_status(StatusType.BUILDING_CONTEXT, "Searching referenced conversations...")
        context_text, cards = await build_context(user_id, query, referenced_conversations, referenced_folders)
        if cards:
            stream.send_context_cards(cards)

        history = await db.get_messages(conversation_id)
        history = [m for m in history if m["id"] != assistant_message["id"]]
        messages = await prepare_messages(history, context_text, project)
        provider = llm_client.get_ai_provider(has_image_parts(messages))

        chunks: list[str] = []
        async with provider.stream(messages, caller="chat") as reply:
            async for text in reply.text_stream:
                chunks.append(text)
                if not stream.send_text(text):
                    logger.warning(f"[ChatService] Client disconnected from {conversation_id}")
                    break

        full_response = "".join(chunks)
        await db.update_message(assistant_message["id"], content=full_response)
        _spawn(embed_message(assistant_message["id"], conversation_id, user_id, full_response))
        stream.close()

    stream = StreamManager()
    stream.run(produce)
    return ChatTurn(
        user_message_id=user_message["id"],
        assistant_message_id=assistant_message["id"],
        stream=stream,
    )
