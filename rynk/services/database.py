"""PostgreSQL database service using asyncpg."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

import asyncpg

from rynk.config import settings
from rynk.services.logger import log_db_operation


# Connection pool
_pool: asyncpg.Pool | None = None


def _db_available() -> bool:
    """Check if database is configured and available."""
    return bool(settings.database_url)


async def _init_connection(conn: asyncpg.Connection) -> None:
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def get_pool() -> asyncpg.Pool:
    """Get or create the database connection pool."""
    global _pool
    if not _db_available():
        raise RuntimeError("Database not configured. Set DATABASE_URL in .env")
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            init=_init_connection,
        )
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


def new_id() -> str:
    return str(uuid.uuid4())


def _build_set_clause(updates: dict[str, Any], start: int = 1) -> str:
    return ", ".join(f"{k} = ${i + start}" for i, k in enumerate(updates.keys()))


# --- Users ---

async def get_user_by_id(user_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
        return dict(row) if row else None


async def get_user_by_email(email: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM users WHERE email = $1", email)
        return dict(row) if row else None


async def create_user(
    email: str,
    name: str | None = None,
    image: str | None = None,
) -> dict[str, Any]:
    """Create a free-tier user with the starting credit grant."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO users (id, email, name, image, credits, subscription_tier, subscription_status)
            VALUES ($1, $2, $3, $4, $5, 'free', 'none')
            RETURNING *
            """,
            new_id(),
            email,
            name,
            image,
            settings.new_user_credits,
        )
        return dict(row)


async def get_user_credits(user_id: str) -> int:
    pool = await get_pool()
    async with pool.acquire() as conn:
        credits = await conn.fetchval("SELECT credits FROM users WHERE id = $1", user_id)
        return credits or 0


async def update_user_credits(user_id: str, amount: int) -> None:
    """Add ``amount`` credits to a user; negative values deduct."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "UPDATE users SET credits = credits + $1, updated_at = now() WHERE id = $2",
            amount,
            user_id,
        )


# --- Projects ---

async def get_projects(user_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            "SELECT * FROM projects WHERE user_id = $1 ORDER BY updated_at DESC",
            user_id,
        )
        return [dict(r) for r in rows]


async def get_project(project_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM projects WHERE id = $1", project_id)
        return dict(row) if row else None


async def create_project(
    user_id: str,
    name: str,
    description: str | None = None,
    instructions: str | None = None,
    attachments: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO projects (id, user_id, name, description, instructions, attachments)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
            """,
            new_id(),
            user_id,
            name,
            description,
            instructions,
            attachments or [],
        )
        return dict(row)


async def update_project(project_id: str, **kwargs: Any) -> dict[str, Any] | None:
    allowed = {"name", "description", "instructions", "attachments"}
    updates = {k: v for k, v in kwargs.items() if k in allowed}
    if not updates:
        return await get_project(project_id)

    set_clause = _build_set_clause(updates, start=2)
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"UPDATE projects SET {set_clause}, updated_at = now() WHERE id = $1 RETURNING *",
            project_id,
            *updates.values(),
        )
        return dict(row) if row else None


async def delete_project(project_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM projects WHERE id = $1", project_id)


# --- Conversations ---

async def get_conversations(user_id: str) -> list[dict[str, Any]]:
    """List a user's conversations, pinned first then most recently updated."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT * FROM conversations
            WHERE user_id = $1
            ORDER BY is_pinned DESC, updated_at DESC
            """,
            user_id,
        )
        return [dict(r) for r in rows]


async def get_conversation(conversation_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM conversations WHERE id = $1", conversation_id)
        return dict(row) if row else None


async def get_conversations_by_ids(conversation_ids: list[str]) -> list[dict[str, Any]]:
    if not conversation_ids:
        return []
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            "SELECT * FROM conversations WHERE id = ANY($1::text[])",
            conversation_ids,
        )
        return [dict(r) for r in rows]


async def create_conversation(
    user_id: str,
    title: str = "New Conversation",
    project_id: str | None = None,
    conversation_id: str | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO conversations (id, user_id, project_id, title)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            conversation_id or new_id(),
            user_id,
            project_id,
            title,
        )
        return dict(row)


async def update_conversation(conversation_id: str, **kwargs: Any) -> dict[str, Any] | None:
    """Update whitelisted conversation fields and bump ``updated_at``."""
    allowed = {"title", "tags", "is_pinned", "path", "project_id"}
    updates = {k: v for k, v in kwargs.items() if k in allowed}
    if not updates:
        return await get_conversation(conversation_id)

    set_clause = _build_set_clause(updates, start=2)
    values = [conversation_id] + list(updates.values())

    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"""
            UPDATE conversations
            SET {set_clause}, updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            *values,
        )
        return dict(row) if row else None


async def delete_conversation(conversation_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM conversations WHERE id = $1", conversation_id)


async def branch_conversation(conversation: dict[str, Any], message_id: str) -> dict[str, Any] | None:
    """Copy the active path up to and including ``message_id`` into a new conversation.

    Returns None when the message is not on the conversation's active path.
    """
    path = list(conversation.get("path") or [])
    if message_id not in path:
        return None
    kept = path[: path.index(message_id) + 1]

    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            rows = await conn.fetch(
                "SELECT * FROM messages WHERE conversation_id = $1 AND id = ANY($2::text[])",
                conversation["id"],
                kept,
            )
            by_id = {r["id"]: r for r in rows}
            copies = [(new_id(), by_id[mid]) for mid in kept if mid in by_id]

            branch = await conn.fetchrow(
                """
                INSERT INTO conversations (id, user_id, project_id, title, path, tags)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                new_id(),
                conversation["user_id"],
                conversation.get("project_id"),
                f"{conversation['title']} (Branch)",
                [copy_id for copy_id, _ in copies],
                conversation.get("tags") or [],
            )
            await conn.executemany(
                """
                INSERT INTO messages (
                    id, conversation_id, role, content, attachments,
                    referenced_conversations, referenced_folders, reasoning_metadata
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                [
                    (
                        copy_id,
                        branch["id"],
                        row["role"],
                        row["content"],
                        row["attachments"],
                        row["referenced_conversations"],
                        row["referenced_folders"],
                        row["reasoning_metadata"],
                    )
                    for copy_id, row in copies
                ],
            )
    log_db_operation("insert", "conversations", "success", details=f"branch of {conversation['id']} at {message_id}")
    return dict(branch)


async def get_all_tags(user_id: str) -> list[str]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT tags FROM conversations WHERE user_id = $1", user_id)
    tags: list[str] = []
    for row in rows:
        for tag in row["tags"] or []:
            if tag not in tags:
                tags.append(tag)
    return tags


# --- Messages ---

async def get_messages(conversation_id: str) -> list[dict[str, Any]]:
    """Return the messages on the conversation's active path, in path order."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        path = await conn.fetchval("SELECT path FROM conversations WHERE id = $1", conversation_id)
        if not path:
            return []
        rows = await conn.fetch(
            "SELECT * FROM messages WHERE conversation_id = $1",
            conversation_id,
        )
    by_id = {r["id"]: dict(r) for r in rows}
    return [by_id[mid] for mid in path if mid in by_id]


async def get_message(message_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM messages WHERE id = $1", message_id)
        return dict(row) if row else None


async def add_message(
    conversation_id: str,
    role: str,
    content: str,
    *,
    attachments: list[dict[str, Any]] | None = None,
    referenced_conversations: list[Any] | None = None,
    referenced_folders: list[Any] | None = None,
    reasoning_metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Insert a message and append it to the conversation path."""
    message_id = new_id()
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                """
                INSERT INTO messages (
                    id, conversation_id, role, content, attachments,
                    referenced_conversations, referenced_folders, reasoning_metadata
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
                """,
                message_id,
                conversation_id,
                role,
                content,
                attachments or [],
                referenced_conversations or [],
                referenced_folders or [],
                reasoning_metadata,
            )
            await conn.execute(
                """
                UPDATE conversations
                SET path = path || to_jsonb($2::text), updated_at = now()
                WHERE id = $1
                """,
                conversation_id,
                message_id,
            )
        return dict(row)


async def update_message(message_id: str, **kwargs: Any) -> None:
    allowed = {"content", "attachments", "reasoning_metadata"}
    updates = {k: v for k, v in kwargs.items() if k in allowed}
    if not updates:
        return

    set_clause = _build_set_clause(updates, start=2)
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            f"UPDATE messages SET {set_clause} WHERE id = $1",
            message_id,
            *updates.values(),
        )


async def delete_message(message_id: str) -> bool:
    """Delete a message and drop it from its conversation path."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            conversation_id = await conn.fetchval(
                "DELETE FROM messages WHERE id = $1 RETURNING conversation_id",
                message_id,
            )
            if conversation_id is None:
                return False
            await conn.execute(
                """
                UPDATE conversations
                SET path = path - $2::text, updated_at = now()
                WHERE id = $1
                """,
                conversation_id,
                message_id,
            )
    return True


async def create_message_version(
    conversation_id: str,
    message_id: str,
    new_content: str,
    attachments: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Create a new version of a message and branch the active path at it.

    The path keeps everything before the edited message, then the new version;
    later messages belong to the old branch and drop off the active path.
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            original = await conn.fetchrow(
                "SELECT * FROM messages WHERE id = $1 AND conversation_id = $2",
                message_id,
                conversation_id,
            )
            if original is None:
                raise LookupError("Message not found")

            root_id = original["version_of"] or original["id"]
            latest = await conn.fetchval(
                """
                SELECT COALESCE(MAX(version_number), 1) FROM messages
                WHERE id = $1 OR version_of = $1
                """,
                root_id,
            )
            new_row = await conn.fetchrow(
                """
                INSERT INTO messages (
                    id, conversation_id, role, content, attachments,
                    referenced_conversations, referenced_folders, version_of, version_number
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING *
                """,
                new_id(),
                conversation_id,
                original["role"],
                new_content,
                attachments if attachments is not None else original["attachments"],
                original["referenced_conversations"],
                original["referenced_folders"],
                root_id,
                latest + 1,
            )

            path = await conn.fetchval(
                "SELECT path FROM conversations WHERE id = $1 FOR UPDATE",
                conversation_id,
            ) or []
            if message_id in path:
                path = path[: path.index(message_id)]
            path.append(new_row["id"])
            await conn.execute(
                "UPDATE conversations SET path = $2, updated_at = now() WHERE id = $1",
                conversation_id,
                path,
            )
    return {"new_message": dict(new_row), "conversation_path": path}


async def get_message_versions(message_id: str) -> list[dict[str, Any]]:
    """All versions of a message (including the original), oldest first."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        root_id = await conn.fetchval(
            "SELECT COALESCE(version_of, id) FROM messages WHERE id = $1",
            message_id,
        )
        if root_id is None:
            return []
        rows = await conn.fetch(
            """
            SELECT * FROM messages
            WHERE id = $1 OR version_of = $1
            ORDER BY version_number ASC
            """,
            root_id,
        )
        return [dict(r) for r in rows]


async def switch_message_version(conversation_id: str, version_id: str) -> list[str]:
    """Make ``version_id`` the active version of its message group.

    The path is cut at whichever version of the group is currently on it and
    continues with the chosen version.
    """
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            version = await conn.fetchrow(
                "SELECT id, COALESCE(version_of, id) AS root_id FROM messages WHERE id = $1 AND conversation_id = $2",
                version_id,
                conversation_id,
            )
            if version is None:
                raise LookupError("Message version not found")
            siblings = {
                r["id"]
                for r in await conn.fetch(
                    "SELECT id FROM messages WHERE id = $1 OR version_of = $1",
                    version["root_id"],
                )
            }
            path = await conn.fetchval(
                "SELECT path FROM conversations WHERE id = $1 FOR UPDATE",
                conversation_id,
            ) or []
            cut = next((i for i, mid in enumerate(path) if mid in siblings), len(path))
            path = path[:cut] + [version_id]
            await conn.execute(
                "UPDATE conversations SET path = $2, updated_at = now() WHERE id = $1",
                conversation_id,
                path,
            )
    return path


# --- Folders ---

async def get_folders(user_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT f.*,
                   COALESCE(
                       array_agg(fc.conversation_id) FILTER (WHERE fc.conversation_id IS NOT NULL),
                       '{}'
                   ) AS conversation_ids
            FROM folders f
            LEFT JOIN folder_conversations fc ON fc.folder_id = f.id
            WHERE f.user_id = $1
            GROUP BY f.id
            ORDER BY f.updated_at DESC
            """,
            user_id,
        )
        return [dict(r) for r in rows]


async def get_folder(folder_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM folders WHERE id = $1", folder_id)
        return dict(row) if row else None


async def create_folder(
    user_id: str,
    name: str,
    description: str | None = None,
    conversation_ids: list[str] | None = None,
) -> dict[str, Any]:
    folder_id = new_id()
    conversation_ids = conversation_ids or []
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            row = await conn.fetchrow(
                """
                INSERT INTO folders (id, user_id, name, description)
                VALUES ($1, $2, $3, $4)
                RETURNING *
                """,
                folder_id,
                user_id,
                name,
                description,
            )
            if conversation_ids:
                await conn.executemany(
                    """
                    INSERT INTO folder_conversations (folder_id, conversation_id)
                    VALUES ($1, $2) ON CONFLICT DO NOTHING
                    """,
                    [(folder_id, cid) for cid in conversation_ids],
                )
    return {**dict(row), "conversation_ids": conversation_ids}


async def update_folder(folder_id: str, **kwargs: Any) -> dict[str, Any] | None:
    allowed = {"name", "description"}
    updates = {k: v for k, v in kwargs.items() if k in allowed}
    if not updates:
        return await get_folder(folder_id)

    set_clause = _build_set_clause(updates, start=2)
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            f"""
            UPDATE folders SET {set_clause}, updated_at = now()
            WHERE id = $1
            RETURNING *
            """,
            folder_id,
            *updates.values(),
        )
        return dict(row) if row else None


async def delete_folder(folder_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM folders WHERE id = $1", folder_id)


async def add_conversation_to_folder(folder_id: str, conversation_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO folder_conversations (folder_id, conversation_id)
            VALUES ($1, $2) ON CONFLICT DO NOTHING
            """,
            folder_id,
            conversation_id,
        )


async def remove_conversation_from_folder(folder_id: str, conversation_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "DELETE FROM folder_conversations WHERE folder_id = $1 AND conversation_id = $2",
            folder_id,
            conversation_id,
        )


async def set_folder_conversations(folder_id: str, conversation_ids: list[str]) -> None:
    """Replace the folder's membership with ``conversation_ids``."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.execute("DELETE FROM folder_conversations WHERE folder_id = $1", folder_id)
            if conversation_ids:
                await conn.executemany(
                    """
                    INSERT INTO folder_conversations (folder_id, conversation_id)
                    VALUES ($1, $2) ON CONFLICT DO NOTHING
                    """,
                    [(folder_id, cid) for cid in conversation_ids],
                )


async def get_folder_conversation_ids(folder_ids: list[str]) -> list[str]:
    if not folder_ids:
        return []
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT DISTINCT conversation_id FROM folder_conversations
            WHERE folder_id = ANY($1::text[])
            """,
            folder_ids,
        )
        return [r["conversation_id"] for r in rows]


# --- Sub-chats ---

async def get_sub_chats(conversation_id: str) -> list[dict[str, Any]]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            "SELECT * FROM sub_chats WHERE conversation_id = $1 ORDER BY created_at ASC",
            conversation_id,
        )
        return [dict(r) for r in rows]


async def get_sub_chat(sub_chat_id: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM sub_chats WHERE id = $1", sub_chat_id)
        return dict(row) if row else None


async def create_sub_chat(
    conversation_id: str,
    source_message_id: str,
    quoted_text: str,
    source_message_content: str | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO sub_chats (id, conversation_id, source_message_id, quoted_text, source_message_content)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
            """,
            new_id(),
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
            "UPDATE sub_chats SET messages = $2, updated_at = now() WHERE id = $1",
            sub_chat_id,
            messages,
        )


async def delete_sub_chat(sub_chat_id: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute("DELETE FROM sub_chats WHERE id = $1", sub_chat_id)


# --- Embeddings ---

async def save_embedding(
    message_id: str,
    conversation_id: str,
    user_id: str,
    content: str,
    vector: list[float],
) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO embeddings (id, message_id, conversation_id, user_id, content, vector)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (message_id) DO UPDATE
            SET content = EXCLUDED.content, vector = EXCLUDED.vector
            """,
            new_id(),
            message_id,
            conversation_id,
            user_id,
            content,
            vector,
        )


async def get_embeddings_for_conversations(conversation_ids: list[str]) -> list[dict[str, Any]]:
    if not conversation_ids:
        return []
    pool = await get_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            """
            SELECT message_id, conversation_id, content, vector
            FROM embeddings
            WHERE conversation_id = ANY($1::text[])
            """,
            conversation_ids,
        )
        return [dict(r) for r in rows]


# --- Attachments ---

async def create_attachment_metadata(
    user_id: str,
    file_name: str,
    file_type: str,
    file_size: int,
    object_key: str,
    message_id: str | None = None,
) -> dict[str, Any]:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO attachments_metadata (id, message_id, user_id, file_name, file_type, file_size, object_key)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
            """,
            new_id(),
            message_id,
            user_id,
            file_name,
            file_type,
            file_size,
            object_key,
        )
        return dict(row)


# --- Mobile sessions ---

async def create_mobile_session(
    *,
    access_token: str,
    refresh_token: str,
    user_id: str,
    provider: str,
    provider_account_id: str | None,
    access_token_expires_at: datetime,
    refresh_token_expires_at: datetime,
) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO mobile_sessions (
                access_token, refresh_token, user_id, provider, provider_account_id,
                access_token_expires_at, refresh_token_expires_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            access_token,
            refresh_token,
            user_id,
            provider,
            provider_account_id,
            access_token_expires_at,
            refresh_token_expires_at,
        )


async def get_mobile_session_by_access_token(access_token: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM mobile_sessions WHERE access_token = $1",
            access_token,
        )
        return dict(row) if row else None


async def get_mobile_session_by_refresh_token(refresh_token: str) -> dict[str, Any] | None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM mobile_sessions WHERE refresh_token = $1",
            refresh_token,
        )
        return dict(row) if row else None


async def rotate_mobile_session(
    old_refresh_token: str,
    *,
    access_token: str,
    refresh_token: str,
    access_token_expires_at: datetime,
    refresh_token_expires_at: datetime,
) -> None:
    """Replace both tokens of a session in place."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            """
            UPDATE mobile_sessions
            SET access_token = $2, refresh_token = $3,
                access_token_expires_at = $4, refresh_token_expires_at = $5
            WHERE refresh_token = $1
            """,
            old_refresh_token,
            access_token,
            refresh_token,
            access_token_expires_at,
            refresh_token_expires_at,
        )


async def delete_mobile_session(token: str) -> None:
    pool = await get_pool()
    async with pool.acquire() as conn:
        await conn.execute(
            "DELETE FROM mobile_sessions WHERE access_token = $1 OR refresh_token = $1",
            token,
        )
