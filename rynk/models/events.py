from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def now_ms() -> int:
    return int(time.time() * 1000)


class StatusType(str, Enum):
    ANALYZING = "analyzing"
    BUILDING_CONTEXT = "building_context"
    SEARCHING = "searching"
    READING_SOURCES = "reading_sources"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    ERROR = "error"


# --- Line-delimited JSON chat stream ---


@dataclass
class StatusUpdate:
    status: StatusType
    message: str
    metadata: dict[str, Any] | None = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "status",
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass
class SearchResultsUpdate:
    query: str
    sources: list[dict[str, Any]]
    strategy: list[str]
    total_results: int
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "search_results",
            "query": self.query,
            "sources": self.sources,
            "strategy": self.strategy,
            "totalResults": self.total_results,
            "timestamp": self.timestamp,
        }


@dataclass
class ContextCard:
    source: str
    snippet: str
    score: float
    conversation_id: str | None = None
    conversation_title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"source": self.source, "snippet": self.snippet, "score": self.score}
        if self.conversation_id:
            data["conversationId"] = self.conversation_id
        if self.conversation_title:
            data["conversationTitle"] = self.conversation_title
        return data


@dataclass
class ContextCardsUpdate:
    cards: list[ContextCard]
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "context_cards",
            "cards": [c.to_dict() for c in self.cards],
            "timestamp": self.timestamp,
        }


def encode_line(update: StatusUpdate | SearchResultsUpdate | ContextCardsUpdate) -> str:
    return json.dumps(update.to_dict(), separators=(",", ":")) + "\n"


# --- Server-sent events for agentic research ---


class EventType(str, Enum):
    STATUS = "status"
    CONTENT = "content"
    META = "meta"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> str:
        return json.dumps({"type": self.event.value, **self.data})

    def format(self) -> str:
        return f"data: {self.payload()}\n\n"

    def to_sse(self) -> dict[str, str]:
        """Shape accepted by sse-starlette's EventSourceResponse."""
        return {"data": self.payload()}
