"""Tests for the humanizer: chunking, the event stream and the route."""
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from rynk.api.routes import humanizer as route
from rynk.main import app
from rynk.services import streaming
from rynk.services.rate_limit import RateLimitResult
from rynk.services.tools import humanizer

RESET = datetime(2026, 1, 2, tzinfo=timezone.utc)
ALLOWED = RateLimitResult(allowed=True, remaining=2, is_guest=True, reset_at=RESET)


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


@pytest.fixture
def client():
    return TestClient(app)


class TestChunkText:
    def test_short_text_is_one_chunk(self):
        assert humanizer.chunk_text("One.\n\nTwo.") == ["One.\n\nTwo."]

    def test_paragraphs_are_packed_up_to_the_limit(self):
        text = "\n\n".join(["a" * 40, "b" * 40, "c" * 40])
        assert humanizer.chunk_text(text, max_size=90) == ["a" * 40 + "\n\n" + "b" * 40, "c" * 40]

    def test_long_paragraph_splits_on_sentences(self):
        paragraph = "First sentence here. Second sentence here. Third one!"
        chunks = humanizer.chunk_text(paragraph, max_size=25)
        assert chunks == ["First sentence here.", "Second sentence here.", "Third one!"]

    def test_paragraph_near_the_limit_never_yields_empty_chunk(self):
        assert humanizer.chunk_text("x" * 99, max_size=100) == ["x" * 99]


@pytest.mark.asyncio
async def test_humanize_stream_reports_progress_per_chunk(monkeypatch):
    provider = MagicMock()
    provider.stream = MagicMock(side_effect=[FakeReply(["One"]), FakeReply(["Two"])])
    monkeypatch.setattr(humanizer.llm_client, "groq", MagicMock(return_value=provider))
    monkeypatch.setattr(humanizer, "chunk_text", MagicMock(return_value=["first", "second"]))

    events = [e.data async for e in humanizer.humanize_stream("ignored")]

    assert events[0]["message"] == "Processing chunk 1 of 2"
    assert events[0]["total_chunks"] == 2
    contents = [e["content"] for e in events if "content" in e]
    assert contents == ["One", "\n\n", "Two"]
    assert events[-1]["status"] == "complete"
    assert provider.stream.call_args_list[1].args[0][-1] == {"role": "user", "content": "second"}


@pytest.mark.asyncio
async def test_events_start_with_meta_and_end_with_error_on_failure(monkeypatch):
    async def failing(text):
        yield streaming.content("partial")
        raise RuntimeError("provider down")

    monkeypatch.setattr(route, "humanize_stream", failing)
    events = [json.loads(e["data"]) async for e in route.humanize_events("text", ALLOWED)]

    assert events[0] == {"type": "meta", "remaining": 2, "reset_at": RESET.isoformat()}
    assert events[1] == {"type": "content", "content": "partial"}
    assert events[2] == {"type": "error", "message": "provider down"}


def test_empty_text_is_rejected(client):
    consume = AsyncMock()
    with patch("rynk.api.routes.humanizer.check_and_consume_tool_limit", consume):
        response = client.post("/api/humanizer", json={"text": "  "})
    assert response.status_code == 400
    assert response.json() == {"error": "Text is required"}
    consume.assert_not_awaited()


def test_too_long_text_is_rejected(client):
    response = client.post("/api/humanizer", json={"text": "a" * (humanizer.MAX_CHARS + 1)})
    assert response.status_code == 400
    assert response.json()["error"] == "Text is too long. Maximum 50,000 characters allowed."


def test_rate_limited_humanize_is_429(client):
    denied = RateLimitResult(allowed=False, remaining=0, is_guest=True, reset_at=RESET, error="Daily limit exceeded")
    with patch("rynk.api.routes.humanizer.check_and_consume_tool_limit", AsyncMock(return_value=denied)):
        response = client.post("/api/humanizer", json={"text": "Some AI text."})
    assert response.status_code == 429
    assert response.json() == {
        "error": "Rate limit exceeded",
        "message": "Daily limit exceeded",
        "reset_at": RESET.isoformat(),
        "remaining": 0,
    }


def test_status_reports_guest_allowance(client):
    with patch("rynk.api.routes.humanizer.get_tool_limit_info", AsyncMock(return_value=ALLOWED)):
        response = client.get("/api/humanizer")
    assert response.json() == {
        "limit": 3,
        "remaining": 2,
        "reset_at": RESET.isoformat(),
        "window_hours": 24,
        "is_guest": True,
    }
