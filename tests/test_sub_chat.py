from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rynk.services import sub_chat_service
from rynk.services.agentic.types import Citation, SourceResult

SUB_CHAT = {
    "id": "sc1",
    "quoted_text": "the mitochondria",
    "source_message_content": "The mitochondria is the powerhouse of the cell.",
    "messages": [],
}


def test_new_message_shape():
    message = sub_chat_service.new_message("user", "why?")
    assert message["id"].startswith("msg_")
    assert message["role"] == "user"
    assert isinstance(message["created_at"], int)


def test_build_messages_includes_quote_and_source():
    messages = sub_chat_service.build_messages(SUB_CHAT, [{"role": "user", "content": "why?"}])
    assert messages[0]["role"] == "system"
    assert "the mitochondria" in messages[0]["content"]
    assert "powerhouse" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "why?"}


def test_format_search_context_skips_empty_sources():
    results = [
        SourceResult(source="exa", citations=[Citation(url="https://a.example", title="A", snippet="s")]),
        SourceResult(source="wikipedia"),
    ]
    context = sub_chat_service.format_search_context(results)
    assert "### EXA Results" in context
    assert "WIKIPEDIA" not in context
    assert sub_chat_service.format_search_context([]) == ""


@pytest.mark.asyncio
async def test_reply_appends_both_messages():
    provider = MagicMock()
    provider.complete = AsyncMock(return_value="Because of ATP.")
    with patch.object(sub_chat_service.llm_client, "get_ai_provider", return_value=provider):
        messages = await sub_chat_service.reply(SUB_CHAT, "  why?  ")
    assert [(m["role"], m["content"]) for m in messages] == [("user", "why?"), ("assistant", "Because of ATP.")]
    assert SUB_CHAT["messages"] == []


@pytest.mark.asyncio
async def test_search_context_skipped_when_not_needed():
    detection = MagicMock(needs_reasoning=False, needs_web_search=False)
    with patch.object(sub_chat_service, "detect_reasoning", AsyncMock(return_value=detection)), \
         patch.object(sub_chat_service, "analyze_intent", AsyncMock()) as analyze:
        assert await sub_chat_service.search_context_for("hello") == ""
    analyze.assert_not_awaited()
