"""Guest-scoped conversations, messages, folders and sub-chats.

Every query is filtered by ``guest_id`` so one guest can never read or change
another guest's rows.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import Any

from rynk.services.database import get_pool, new_id


def _prefixed_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


# --- Conversations ---

async def list_conversations(guest_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT c.*, COUNT(m.id) AS message_count
            FROM guest_conversations c
            LEFT JOIN guest_messages m ON m.conversation_id = c.id
            WHERE c.guest_id = $1
            GROUP BY c.id
            ORDER BY c.is_pinned DESC, c.updated_at DESC
            """,
            guest_id,
        )
        return [dict(r) for r in rows]


async def get_conversation(guest_id: str, conversation_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM guest_conversations WHERE id = $1 AND guest_id = $2",
            conversation_id,
            guest_id,
        )
        return dict(row) if row else None


async def create_conversation(
    guest_id: str,
    title: str,
    conversation_id: str | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO guest_conversations (id, guest_id, title)
            VALUES ($1, $2, $3)
            RETURNING *
            """,
            conversation_id or new_id(),
            guest_id,
            title,
        )
        return dict(row)


async def update_conversation(guest_id: str, conversation_id: str, **kwargs: Any) -> bool:
    allowed = {"title", "is_pinned", "tags", "path"}
    updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
    set_parts = ["updated_at = now()"]
    set_parts += [f"{k} = ${i + 3}" for i, k in enumerate(updates.keys())]

    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            f"""
            UPDATE guest_conversations SET {", ".join(set_parts)}
            WHERE id = $1 AND guest_id = $2
            """,
            conversation_id,
            guest_id,
            *updates.values(),
        )
    return result.endswith(" 1")


async def delete_conversation(guest_id: str, conversation_id: str) -> bool:
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "DELETE FROM guest_conversations WHERE id = $1 AND guest_id = $2",
            conversation_id,
            guest_id,
        )
    return result.endswith(" 1")


async def get_conversations_by_ids(guest_id: str, conversation_ids: list[str]) -> list[dict[str, Any]]:
    if not conversation_ids:
        return []
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT * FROM guest_conversations
            WHERE guest_id = $1 AND id = ANY($2::text[])
            """,
            guest_id,
            conversation_ids,
        )
        return [dict(r) for r in rows]


async def get_all_tags(guest_id: str) -> list[str]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT tags FROM guest_conversations WHERE guest_id = $1", guest_id)
    tags: list[str] = []
    for row in rows:
        for tag in row["tags"] or []:
            if tag not in tags:
                tags.append(tag)
    return sorted(tags)


# --- Messages ---

async def get_messages(conversation_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            "SELECT * FROM guest_messages WHERE conversation_id = $1 ORDER BY created_at ASC",
            conversation_id,
        )
        return [dict(r) for r in rows]


async def get_messages_page(
    guest_id: str,
    conversation_id: str,
    limit: int = 50,
    before: datetime | None = None,
) -> tuple[list[dict[str, Any]], datetime | None]:
    """Newest ``limit`` messages older than ``before``, returned oldest first.

    The second value is the cursor for the next (older) page, or None.
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT * FROM guest_messages
            WHERE conversation_id = $1 AND guest_id = $2
              AND ($3::timestamptz IS NULL OR created_at < $3)
            ORDER BY created_at DESC
            LIMIT $4
            """,
            conversation_id,
            guest_id,
            before,
            limit + 1,
        )
    page = [dict(r) for r in rows[:limit]]
    next_cursor = page[-1]["created_at"] if len(rows) > limit else None
    page.reverse()
    return page, next_cursor


async def get_message(guest_id: str, message_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM guest_messages WHERE id = $1 AND guest_id = $2",
            message_id,
            guest_id,
        )
        return dict(row) if row else None


async def add_message(
    guest_id: str,
    conversation_id: str,
    role: str,
    content: str,
    *,
    attachments: list[dict[str, Any]] | None = None,
    referenced_conversations: list[Any] | None = None,
    referenced_folders: list[Any] | None = None,
    message_id: str | None = None,
) -> dict[str, Any]:
    message_id = message_id or new_id()
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                """
                INSERT INTO guest_messages (
                    id, conversation_id, guest_id, role, content, attachments,
                    referenced_conversations, referenced_folders
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
                """,
                message_id,
                conversation_id,
                guest_id,
                role,
                content,
                attachments or [],
                referenced_conversations or [],
                referenced_folders or [],
            )
            await conn.execute(
                """
                UPDATE guest_conversations
                SET path = path || to_jsonb($2::text), updated_at = now()
                WHERE id = $1
                """,
                conversation_id,
                message_id,
            )
        return dict(row)


async def update_message(
    message_id: str,
    content: str,
    reasoning_metadata: dict[str, Any] | None = None,
) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "UPDATE guest_messages SET content = $2, reasoning_metadata = $3 WHERE id = $1",
            message_id,
            content,
            reasoning_metadata,
        )


async def delete_messages(guest_id: str, conversation_id: str, message_ids: list[str] | None = None) -> int:
    """Delete the given messages, or every message in the conversation when none are given."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            if message_ids:
                result = await conn.execute(
                    """
                    DELETE FROM guest_messages
                    WHERE conversation_id = $1 AND guest_id = $2 AND id = ANY($3::text[])
                    """,
                    conversation_id,
                    guest_id,
                    message_ids,
                )
                await conn.execute(
                    """
                    UPDATE guest_conversations
                    SET path = path - $2::text[], updated_at = now()
                    WHERE id = $1
                    """,
                    conversation_id,
                    message_ids,
                )
            else:
                result = await conn.execute(
                    "DELETE FROM guest_messages WHERE conversation_id = $1 AND guest_id = $2",
                    conversation_id,
                    guest_id,
                )
                await conn.execute(
                    "UPDATE guest_conversations SET path = '[]', updated_at = now() WHERE id = $1",
                    conversation_id,
                )
    return int(result.split()[-1])


# --- Folders ---

async def list_folders(guest_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT f.*,
                   COUNT(fc.conversation_id) AS conversation_count,
                   COALESCE(
                       array_agg(fc.conversation_id) FILTER (WHERE fc.conversation_id IS NOT NULL),
                       '{}'
                   ) AS conversation_ids
            FROM guest_folders f
            LEFT JOIN guest_folder_conversations fc ON fc.folder_id = f.id
            WHERE f.guest_id = $1
            GROUP BY f.id
            ORDER BY f.updated_at DESC
            """,
            guest_id,
        )
        return [dict(r) for r in rows]


async def get_folder(guest_id: str, folder_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM guest_folders WHERE id = $1 AND guest_id = $2",
            folder_id,
            guest_id,
        )
        if row is None:
            return None
        conversations = await conn.fetch(
            """
            SELECT c.* FROM guest_conversations c
            JOIN guest_folder_conversations fc ON fc.conversation_id = c.id
            WHERE fc.folder_id = $1
            ORDER BY fc.added_at DESC
            """,
            folder_id,
        )
    return {**dict(row), "conversations": [dict(c) for c in conversations]}


async def create_folder(guest_id: str, name: str, description: str | None = None) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO guest_folders (id, guest_id, name, description)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            _prefixed_id("folder"),
            guest_id,
            name,
            description,
        )
        return dict(row)


async def update_folder(guest_id: str, folder_id: str, **kwargs: Any) -> bool:
    allowed = {"name", "description"}
    updates = {k: v for k, v in kwargs.items() if k in allowed and v is not None}
    set_parts = ["updated_at = now()"]
    set_parts += [f"{k} = ${i + 3}" for i, k in enumerate(updates.keys())]

    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            f"""
            UPDATE guest_folders SET {", ".join(set_parts)}
            WHERE id = $1 AND guest_id = $2
            """,
            folder_id,
            guest_id,
            *updates.values(),
        )
    return result.endswith(" 1")


async def delete_folder(guest_id: str, folder_id: str) -> bool:
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "DELETE FROM guest_folders WHERE id = $1 AND guest_id = $2",
            folder_id,
            guest_id,
        )
    return result.endswith(" 1")


async def add_conversation_to_folder(folder_id: str, conversation_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO guest_folder_conversations (folder_id, conversation_id)
            VALUES ($1, $2) ON CONFLICT DO NOTHING
            """,
            folder_id,
            conversation_id,
        )


async def remove_conversation_from_folder(folder_id: str, conversation_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "DELETE FROM guest_folder_conversations WHERE folder_id = $1 AND conversation_id = $2",
            folder_id,
            conversation_id,
        )


# --- Sub-chats ---

async def list_sub_chats(guest_id: str, conversation_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT * FROM guest_sub_chats
            WHERE guest_id = $1 AND conversation_id = $2
            ORDER BY created_at ASC
            """,
            guest_id,
            conversation_id,
        )
        return [dict(r) for r in rows]


async def get_sub_chat(guest_id: str, sub_chat_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM guest_sub_chats WHERE id = $1 AND guest_id = $2",
            sub_chat_id,
            guest_id,
        )
        return dict(row) if row else None


async def create_sub_chat(
    guest_id: str,
    conversation_id: str,
    source_message_id: str,
    quoted_text: str,
    source_message_content: str | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO guest_sub_chats (
                id, guest_id, conversation_id, source_message_id, quoted_text, source_message_content
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            _prefixed_id("subchat"),
            guest_id,
            conversation_id,
            source_message_id,
            quoted_text,
            source_message_content,
        )
        return dict(row)


async def update_sub_chat_messages(sub_chat_id: str, messages: list[dict[str, Any]]) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "UPDATE guest_sub_chats SET messages = $2, updated_at = now() WHERE id = $1",
            sub_chat_id,
            messages,
        )


async def delete_sub_chat(guest_id: str, sub_chat_id: str) -> bool:
    pool = await get_pool()
    async with pool.acquire() as conn:
        result = await conn.execute(
            "DELETE FROM guest_sub_chats WHERE id = $1 AND guest_id = $2",
            sub_chat_id,
            guest_id,
        )
    return result.endswith(" 1")
