"""Tests for the text tool routes: validation, usage limits and result shape."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from rynk.main import app
from rynk.services.rate_limit import RateLimitResult
from rynk.services.tools.paraphraser import ParaphraseResult
from rynk.services.tools.summarizer import SummaryResult

LONG_TEXT = "The quick brown fox jumps over the lazy dog. " * 3

ALLOWED = RateLimitResult(allowed=True, remaining=4, is_guest=True)
DENIED = RateLimitResult(
    allowed=False,
    remaining=0,
    is_guest=True,
    reset_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
    error="Daily limit exceeded",
)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def limits():
    info = AsyncMock(return_value=ALLOWED)
    consume = AsyncMock(return_value=ALLOWED)
    with patch("rynk.api.routes.tools.get_tool_limit_info", info), \
         patch("rynk.api.routes.tools.check_and_consume_tool_limit", consume):
        yield info, consume


@pytest.mark.parametrize(
    "path, body",
    [
        ("/api/tools/summarizer", {"text": "too short"}),
        ("/api/tools/paraphraser", {"text": "short"}),
        ("/api/tools/grammar", {"text": "short"}),
        ("/api/tools/ai-detector", {"text": "short"}),
        ("/api/tools/blog-title", {"topic": "ai"}),
        ("/api/tools/email-subject", {"content": "hi"}),
        ("/api/tools/instagram-caption", {"description": "ab"}),
        ("/api/tools/devils-advocate", {"text": "short"}),
    ],
)
def test_short_input_is_rejected(client, limits, path, body):
    response = client.post(path, json=body)
    assert response.status_code == 400
    assert "error" in response.json()
    limits[0].assert_not_awaited()


def test_invalid_paraphrase_mode(client, limits):
    response = client.post("/api/tools/paraphraser", json={"text": LONG_TEXT, "mode": "pirate"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid mode")


def test_rate_limited_guest_gets_429(client, limits):
    info, consume = limits
    info.return_value = DENIED
    summarize = AsyncMock()
    with patch("rynk.api.routes.tools.summarize_text", summarize):
        response = client.post("/api/tools/summarizer", json={"text": LONG_TEXT})
    assert response.status_code == 429
    assert response.json() == {
        "error": "Rate limit exceeded",
        "message": "Daily limit exceeded",
        "reset_at": "2026-01-02T00:00:00+00:00",
    }
    consume.assert_not_awaited()
    summarize.assert_not_called()


def test_summarizer_consumes_on_success(client, limits):
    info, consume = limits
    result = SummaryResult(
        summary="A fox jumps.",
        original_word_count=27,
        summary_word_count=3,
        compression_ratio=89,
    )
    summarize = AsyncMock(return_value=result)
    with patch("rynk.api.routes.tools.summarize_text", summarize):
        response = client.post(
            "/api/tools/summarizer",
            json={"text": LONG_TEXT, "length": "brief", "format": "bullets"},
        )
    assert response.status_code == 200
    assert response.json()["result"]["summary"] == "A fox jumps."
    summarize.assert_awaited_once_with(LONG_TEXT.strip(), "brief", "bullets")
    assert info.await_args.args[1] == "summarizer"
    assert consume.await_args.args[1:] == ("summarizer", None)


def test_paraphraser_returns_dataclass_fields(client, limits):
    result = ParaphraseResult(paraphrased="A speedy fox.", changes=60, mode="simple")
    with patch("rynk.api.routes.tools.paraphrase_text", AsyncMock(return_value=result)):
        response = client.post("/api/tools/paraphraser", json={"text": LONG_TEXT, "mode": "simple"})
    assert response.json() == {"result": {"paraphrased": "A speedy fox.", "changes": 60, "mode": "simple"}}


def test_generator_dict_result_passes_through(client, limits):
    titles = {"titles": ["One", "Two"]}
    generate = AsyncMock(return_value=titles)
    with patch("rynk.api.routes.tools.generate_titles", generate):
        response = client.post("/api/tools/blog-title", json={"topic": "remote work", "count": 2})
    assert response.json() == {"result": titles}
    generate.assert_awaited_once_with("remote work", "viral", 2)


def test_unparseable_model_output_is_500_without_consuming(client, limits):
    _, consume = limits
    detect = AsyncMock(side_effect=ValueError("Failed to parse AI detection response"))
    with patch("rynk.api.routes.tools.detect_ai_content", detect):
        response = client.post("/api/tools/ai-detector", json={"text": LONG_TEXT})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse AI detection response"}
    consume.assert_not_awaited()


def test_failed_limit_lookup_never_starts_the_tool():
    summarize = MagicMock()
    with patch("rynk.api.routes.tools.get_tool_limit_info", AsyncMock(side_effect=RuntimeError("db down"))), \
         patch("rynk.api.routes.tools.summarize_text", summarize):
        response = TestClient(app, raise_server_exceptions=False).post(
            "/api/tools/summarizer", json={"text": LONG_TEXT}
        )
    assert response.status_code == 500
    assert response.json() == {"error": "db down"}
    summarize.assert_not_called()
