"""Tests for guest chat turns."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from rynk.config import settings
from rynk.errors import ApiError
from rynk.services import guest_chat_service as service


class FakeReply:
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


def test_credits_exceeded_body():
    error = service.credits_exceeded()
    assert error.status_code == 403
    assert error.to_dict() == {
        "error": "GUEST_CREDITS_EXCEEDED",
        "message": "Guest credits exhausted",
        "remaining": 0,
        "limit": settings.guest_credits_limit,
    }


def test_domain_name():
    assert service.domain_name("https://www.example.com/a") == "example.com"
    assert service.domain_name("https://docs.python.org") == "docs.python.org"


def test_prepare_guest_messages_names_attachments():
    history = [
        {"role": "user", "content": "see file", "attachments": [{"name": "a.pdf"}, {"url": "x"}]},
        {"role": "assistant", "content": "ok"},
    ]
    messages = service.prepare_guest_messages(history, "extra context")
    assert messages[0]["role"] == "system"
    assert "extra context" in messages[0]["content"]
    assert messages[1]["content"] == "see file\n\n[Attachments: a.pdf]"
    assert messages[2] == {"role": "assistant", "content": "ok"}


@pytest.mark.asyncio
async def test_invalid_reasoning_mode():
    with pytest.raises(ApiError) as exc_info:
        await service.handle_guest_chat_request("guest_a", "c1", content="hi", reasoning_mode="maybe")
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_no_credits(monkeypatch):
    monkeypatch.setattr(
        service.guest, "check_guest_credits", AsyncMock(return_value={"has_credits": False, "remaining": 0})
    )
    with pytest.raises(ApiError) as exc_info:
        await service.handle_guest_chat_request("guest_a", "c1", content="hi")
    assert exc_info.value.message == "GUEST_CREDITS_EXCEEDED"


@pytest.mark.asyncio
async def test_first_message_creates_conversation_and_streams(monkeypatch):
    store = MagicMock()
    store.get_conversation = AsyncMock(return_value=None)
    store.create_conversation = AsyncMock(return_value={"id": "c1"})
    store.add_message = AsyncMock(side_effect=[{"id": "u-msg"}, {"id": "a-msg"}])
    store.get_messages = AsyncMock(
        return_value=[
            {"id": "u-msg", "role": "user", "content": "hello"},
            {"id": "a-msg", "role": "assistant", "content": ""},
        ]
    )
    store.update_message = AsyncMock()
    provider = MagicMock()
    provider.name = "openrouter"
    provider.stream = MagicMock(return_value=FakeReply(["Hey"]))

    monkeypatch.setattr(service, "guest_store", store)
    monkeypatch.setattr(
        service.guest, "check_guest_credits", AsyncMock(return_value={"has_credits": True, "remaining": 2})
    )
    monkeypatch.setattr(service.guest, "decrement_guest_credits", AsyncMock(return_value=True))
    monkeypatch.setattr(service.llm_client, "get_ai_provider", MagicMock(return_value=provider))

    turn = await service.handle_guest_chat_request(
        "guest_a", "c1", content="hello", reasoning_mode="off", user_message_id="u-msg"
    )
    body = b"".join([chunk async for chunk in turn.stream.iter_bytes()]).decode()

    store.create_conversation.assert_awaited_once_with("guest_a", "hello", conversation_id="c1")
    assert store.add_message.await_args_list[0].kwargs["message_id"] == "u-msg"
    assert turn.headers["X-Guest-Credits-Remaining"] == "2"
    assert "Hey" in body
    store.update_message.assert_awaited_once_with("a-msg", "Hey", None)
    sent = provider.stream.call_args.args[0]
    assert sent[0]["role"] == "system"
    assert sent[-1] == {"role": "user", "content": "hello"}


@pytest.mark.asyncio
async def test_lost_credit_race_writes_nothing(monkeypatch):
    store = MagicMock()
    store.get_conversation = AsyncMock(return_value=None)
    store.create_conversation = AsyncMock()
    store.add_message = AsyncMock()
    monkeypatch.setattr(service, "guest_store", store)
    monkeypatch.setattr(
        service.guest, "check_guest_credits", AsyncMock(return_value={"has_credits": True, "remaining": 1})
    )
    monkeypatch.setattr(service.guest, "decrement_guest_credits", AsyncMock(return_value=False))

    with pytest.raises(ApiError) as exc_info:
        await service.handle_guest_chat_request("guest_a", "c1", content="hello")

    assert exc_info.value.status_code == 403
    assert exc_info.value.to_dict()["remaining"] == 0
    store.create_conversation.assert_not_awaited()
    store.add_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_regenerate_of_unknown_message_spends_nothing(monkeypatch):
    store = MagicMock()
    store.get_conversation = AsyncMock(return_value={"id": "c1"})
    store.get_message = AsyncMock(return_value=None)
    decrement = AsyncMock(return_value=True)
    monkeypatch.setattr(service, "guest_store", store)
    monkeypatch.setattr(
        service.guest, "check_guest_credits", AsyncMock(return_value={"has_credits": True, "remaining": 1})
    )
    monkeypatch.setattr(service.guest, "decrement_guest_credits", decrement)

    with pytest.raises(ApiError) as exc_info:
        await service.handle_guest_chat_request("guest_a", "c1", message_id="m-missing")

    assert exc_info.value.status_code == 404
    decrement.assert_not_awaited()
