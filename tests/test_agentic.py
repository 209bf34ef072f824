"""Tests for the agentic research pipeline."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rynk.models.events import EventType
from rynk.services.agentic import research
from rynk.services.agentic.intent_analyzer import fallback_plan, parse_plan
from rynk.services.agentic.response_synthesizer import AllSourcesFailedError, ResponseSynthesizer
from rynk.services.agentic.source_orchestrator import SourceOrchestrator, financial_summary
from rynk.services.agentic.types import Citation, SearchQueries, SourcePlan, SourceResult


class FakeSynthesizer:
    def __init__(self, chunks, citations=None, error=None):
        self.chunks = chunks
        self.citations = citations or []
        self.error = error

    async def synthesize_stream(self, query, results, history=None, *, citations_out=None):
        if self.error:
            raise self.error
        if citations_out is not None:
            citations_out.extend(self.citations)
        for chunk in self.chunks:
            yield chunk


def test_parse_plan_maps_tool_arguments():
    analysis, plan = parse_plan(
        {
            "category": "current_events",
            "needsWebSearch": True,
            "sources": ["exa", "financial", "bogus"],
            "searchQueries": {"exa": "q", "financial": {"type": "crypto", "symbols": ["bitcoin"]}},
            "expectedType": "market_data",
        }
    )
    assert analysis.category == "current_events"
    assert analysis.needs_web_search is True
    assert plan.sources == ["exa", "financial"]
    assert plan.search_queries.financial.kind == "crypto"
    assert plan.expected_type == "market_data"


def test_fallback_plan_uses_perplexity():
    _, plan = fallback_plan("what happened today")
    assert plan.sources == ["perplexity"]
    assert plan.search_queries.perplexity == "what happened today"


def test_synthesizer_requires_a_successful_source():
    with pytest.raises(AllSourcesFailedError):
        ResponseSynthesizer.successful([SourceResult(source="exa", error="boom")])


def test_collect_citations_tags_source():
    result = SourceResult(
        source="wikipedia",
        data=["x"],
        citations=[Citation(url="https://w.example", title=""), Citation(url="", title="skip")],
    )
    citations = ResponseSynthesizer.collect_citations([result])
    assert len(citations) == 1
    assert citations[0].title == "Untitled"
    assert citations[0].source == "wikipedia"


def test_financial_summary():
    result = SourceResult(
        source="financial",
        data=[{"symbol": "AAPL", "data": {"name": "Apple", "symbol": "AAPL", "price": 110.0, "change_percent": 1.5}}],
    )
    assert financial_summary(result) == "Apple (AAPL): 110.0 (+1.50%)"


@pytest.mark.asyncio
async def test_orchestrator_captures_source_failures():
    orchestrator = SourceOrchestrator(market=MagicMock())
    plan = SourcePlan(
        sources=["exa", "perplexity"],
        reasoning="",
        search_queries=SearchQueries(exa="q", perplexity="q"),
        expected_type="deep_research",
    )
    with patch.object(orchestrator, "fetch_from_exa", AsyncMock(side_effect=RuntimeError("exa down"))), \
         patch.object(orchestrator, "fetch_from_perplexity", AsyncMock(return_value=SourceResult("perplexity", data="answer"))):
        results = await orchestrator.execute_source_plan(plan)
    assert [r.source for r in results] == ["exa", "perplexity"]
    assert results[0].error == "exa down"
    assert results[1].ok


@pytest.mark.asyncio
async def test_run_research_event_order():
    plan_out = {}
    orchestrator = MagicMock()
    orchestrator.execute_source_plan = AsyncMock(return_value=[])
    with patch.object(research, "analyze_intent", AsyncMock(return_value=fallback_plan("q"))):
        events = [
            e
            async for e in research.run_research(
                "q",
                orchestrator=orchestrator,
                synthesizer=FakeSynthesizer(["A", "B"]),
                plan_out=plan_out,
            )
        ]
    statuses = [e.data["status"] for e in events if e.event == EventType.STATUS]
    assert statuses == ["analyzing", "searching", "synthesizing"]
    assert "".join(e.data["content"] for e in events if e.event == EventType.CONTENT) == "AB"
    assert plan_out["sources"] == ["perplexity"]


@pytest.mark.asyncio
async def test_handle_agentic_request_persists_answer(monkeypatch):
    async def fake_research(query, history, *, citations_out, plan_out):
        citations_out.append(Citation(url="https://a.example", title="A", source="exa"))
        plan_out["sources"] = ["exa"]
        yield research.streaming.content("Answer")

    update = AsyncMock()
    monkeypatch.setattr(research, "run_research", fake_research)
    monkeypatch.setattr(research.db, "get_messages", AsyncMock(return_value=[]))
    monkeypatch.setattr(research.db, "add_message", AsyncMock(side_effect=[{"id": "u"}, {"id": "a"}]))
    monkeypatch.setattr(research.db, "update_message", update)

    events = [e async for e in research.handle_agentic_request("user-1", "c1", "question")]

    assert events[0].event == EventType.META
    assert events[0].data == {"userMessageId": "u", "assistantMessageId": "a"}
    assert events[-1].data["status"] == "complete"
    kwargs = update.await_args.kwargs
    assert kwargs["content"] == "Answer"
    assert kwargs["reasoning_metadata"]["agentic"] is True
    assert kwargs["reasoning_metadata"]["citations"][0]["url"] == "https://a.example"


@pytest.mark.asyncio
async def test_handle_agentic_request_reports_failure(monkeypatch):
    async def failing_research(query, history, *, citations_out, plan_out):
        raise AllSourcesFailedError("All sources failed to provide data")
        yield  # pragma: no cover

    update = AsyncMock()
    monkeypatch.setattr(research, "run_research", failing_research)
    monkeypatch.setattr(research.db, "get_messages", AsyncMock(return_value=[]))
    monkeypatch.setattr(research.db, "update_message", update)

    events = [
        e async for e in research.handle_agentic_request("user-1", "c1", "q", user_message_id="u", assistant_message_id="a")
    ]

    assert events[-1].event == EventType.ERROR
    assert events[-1].data["message"] == "All sources failed to provide data"
    assert update.await_args.args == ("a",)
    assert update.await_args.kwargs["reasoning_metadata"]["error"] == "All sources failed to provide data"
