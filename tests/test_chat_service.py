"""Tests for authenticated chat turns."""
import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rynk.errors import ApiError, NotFoundError
from rynk.services import chat_service
from rynk.services.storage import StoredObject
from rynk.services.stream_manager import StreamManager


class FakeReply:
    """Stands in for ``ChatStream``: an async context manager with a ``text_stream``."""

    def __init__(self, chunks):
        self.chunks = chunks

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def _iter(self):
        for chunk in self.chunks:
            yield chunk

    @property
    def text_stream(self):
        return self._iter()


def test_turn_headers():
    turn = chat_service.ChatTurn("u-msg", "a-msg", StreamManager())
    assert turn.headers == {"X-User-Message-Id": "u-msg", "X-Assistant-Message-Id": "a-msg"}
    turn.credits_remaining = 3
    assert turn.headers["X-Guest-Credits-Remaining"] == "3"


def test_ref_ids_accepts_dicts_and_strings():
    assert chat_service.ref_ids([{"id": "a"}, "b", {"title": "no id"}, None]) == ["a", "b"]
    assert chat_service.ref_ids(None) == []


@pytest.mark.parametrize(
    "url, key",
    [
        ("/api/files/user-1/123-a%20b.png", "user-1/123-a b.png"),
        ("https://rynk.example/api/files/user-1/x.png", "user-1/x.png"),
        ("https://cdn.example/user-1/x.png", "user-1/x.png"),
        ("user-1/x.png", "user-1/x.png"),
    ],
)
def test_object_key_from_url(url, key):
    assert chat_service.object_key_from_url(url) == key


@pytest.mark.asyncio
async def test_image_becomes_data_url():
    stored = StoredObject(body=b"png-bytes", content_type="image/png")
    with patch.object(chat_service.storage, "get_file", AsyncMock(return_value=stored)):
        data_url = await chat_service.fetch_image_as_data_url("/api/files/k.png")
    assert data_url == "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()


@pytest.mark.asyncio
async def test_prepare_messages_orders_instructions_context_and_images(monkeypatch):
    monkeypatch.setattr(chat_service, "fetch_image_as_data_url", AsyncMock(return_value=None))
    monkeypatch.setattr(chat_service.settings, "public_base_url", "https://rynk.example")
    project = {
        "instructions": "Answer in French.",
        "attachments": [{"type": "image/png", "url": "/api/files/p.png"}],
    }
    history = [
        {"role": "user", "content": "hello", "attachments": [{"type": "image/jpeg", "url": "/api/files/q.jpg"}]},
        {"role": "system", "content": "ignored"},
        {"role": "assistant", "content": "bonjour"},
    ]

    messages = await chat_service.prepare_messages(history, "some context", project)

    assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user", "assistant"]
    assert "Answer in French." in messages[0]["content"]
    assert "some context" in messages[1]["content"]
    assert messages[3]["content"] == chat_service.PROJECT_FILES_ACK
    user_parts = messages[4]["content"]
    assert user_parts[0] == {"type": "text", "text": "hello"}
    assert user_parts[1]["image_url"]["url"] == "https://rynk.example/api/files/q.jpg"
    assert chat_service.has_image_parts(messages)


@pytest.mark.asyncio
async def test_build_context_keeps_only_owned_conversations():
    provider = MagicMock()
    provider.embed = AsyncMock(return_value=[1.0, 0.0])
    embeddings = [
        {"conversation_id": "mine", "content": "owned snippet", "vector": [1.0, 0.0]},
        {"conversation_id": "theirs", "content": "foreign snippet", "vector": [1.0, 0.0]},
    ]
    conversations = [
        {"id": "mine", "title": "My chat", "user_id": "u1"},
        {"id": "theirs", "title": "Other", "user_id": "u2"},
    ]
    with patch.object(chat_service.llm_client, "openrouter", return_value=provider), \
         patch.object(chat_service.db, "get_folder_conversation_ids", AsyncMock(return_value=["theirs"])), \
         patch.object(chat_service.db, "get_embeddings_for_conversations", AsyncMock(return_value=embeddings)), \
         patch.object(chat_service.db, "get_conversations_by_ids", AsyncMock(return_value=conversations)):
        text, cards = await chat_service.build_context("u1", "query", [{"id": "mine"}], ["folder-1"])

    assert "owned snippet" in text
    assert "foreign snippet" not in text
    assert [c.conversation_id for c in cards] == ["mine"]
    assert cards[0].source == "My chat"


@pytest.mark.asyncio
async def test_build_context_failure_is_empty():
    with patch.object(chat_service.db, "get_embeddings_for_conversations", AsyncMock(side_effect=RuntimeError("db"))):
        assert await chat_service.build_context("u1", "q", ["c1"], None) == ("", [])


@pytest.mark.asyncio
async def test_no_credits_is_403():
    with patch.object(chat_service.db, "get_user_credits", AsyncMock(return_value=0)):
        with pytest.raises(ApiError) as exc_info:
            await chat_service.handle_chat_request("u1", "c1", content="hi")
    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "Insufficient credits"


@pytest.mark.asyncio
async def test_foreign_conversation_is_404():
    with patch.object(chat_service.db, "get_user_credits", AsyncMock(return_value=5)), \
         patch.object(chat_service.db, "get_conversation", AsyncMock(return_value={"id": "c1", "user_id": "u2"})):
        with pytest.raises(NotFoundError):
            await chat_service.handle_chat_request("u1", "c1", content="hi")


@pytest.mark.asyncio
async def test_turn_streams_reply_and_saves_it(monkeypatch):
    provider = MagicMock()
    provider.stream = MagicMock(return_value=FakeReply(["Hi", " there"]))
    update_message = AsyncMock()
    add_message = AsyncMock(side_effect=[{"id": "user-msg"}, {"id": "assistant-msg"}])
    credits = AsyncMock()

    monkeypatch.setattr(chat_service, "embed_message", AsyncMock())
    monkeypatch.setattr(chat_service.llm_client, "get_ai_provider", MagicMock(return_value=provider))
    monkeypatch.setattr(chat_service.db, "get_user_credits", AsyncMock(return_value=5))
    monkeypatch.setattr(
        chat_service.db, "get_conversation", AsyncMock(return_value={"id": "c1", "user_id": "u1", "project_id": None})
    )
    monkeypatch.setattr(chat_service.db, "add_message", add_message)
    monkeypatch.setattr(chat_service.db, "update_user_credits", credits)
    monkeypatch.setattr(
        chat_service.db,
        "get_messages",
        AsyncMock(return_value=[{"id": "user-msg", "role": "user", "content": "hello"}, {"id": "assistant-msg", "role": "assistant", "content": ""}]),
    )
    monkeypatch.setattr(chat_service.db, "update_message", update_message)

    turn = await chat_service.handle_chat_request("u1", "c1", content="hello")
    body = b"".join([chunk async for chunk in turn.stream.iter_bytes()]).decode()

    assert turn.user_message_id == "user-msg"
    assert turn.assistant_message_id == "assistant-msg"
    assert body.startswith("Hi there")
    credits.assert_awaited_once_with("u1", -1)
    update_message.assert_awaited_once_with("assistant-msg", content="Hi there")
    sent = provider.stream.call_args.args[0]
    assert sent == [{"role": "user", "content": "hello"}]
