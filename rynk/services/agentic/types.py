from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Source = Literal["exa", "perplexity", "wikipedia", "financial"]
SOURCES: tuple[str, ...] = ("exa", "perplexity", "wikipedia", "financial")

CATEGORIES = ("current_events", "factual", "technical", "conversational", "complex")
EXPECTED_TYPES = ("quick_fact", "deep_research", "current_event", "comparison", "market_data")


@dataclass
class QuickAnalysis:
    category: str
    needs_web_search: bool
    needs_reasoning: bool
    confidence: float


@dataclass
class FinancialQuery:
    kind: Literal["stock", "crypto"]
    symbols: list[str]


@dataclass
class SearchQueries:
    exa: str | None = None
    perplexity: str | None = None
    wikipedia: list[str] = field(default_factory=list)
    financial: FinancialQuery | None = None


@dataclass
class SourcePlan:
    sources: list[str]
    reasoning: str
    search_queries: SearchQueries
    expected_type: str


@dataclass
class Citation:
    url: str
    title: str
    snippet: str | None = None
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url, "title": self.title}
        if self.snippet:
            data["snippet"] = self.snippet
        if self.source:
            data["source"] = self.source
        return data


@dataclass
class SourceResult:
    """Outcome of one source fetch. ``error`` is set instead of raising."""
    source: str
    data: Any = None
    citations: list[Citation] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.data)


@dataclass
class SynthesisResult:
    content: str
    citations: list[Citation]
