"""Reader side of the line-delimited JSON chat stream."""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass, field
from typing import Any, Callable

_EVENT_PREFIXES = {
    '{"type":"status"': "status",
    '{"type":"search_results"': "search_results",
    '{"type":"context_cards"': "context_cards",
}


@dataclass
class StreamEvent:
    type: str
    data: Any = None
    text: str = ""


def _parse_event_line(line: str) -> StreamEvent | None:
    kind = next((k for p, k in _EVENT_PREFIXES.items() if line.startswith(p)), None)
    if kind is None:
        return None
    try:
        parsed = json.loads(line)
    except json.JSONDecodeError:
        return None

    if kind == "status":
        data = {
            "status": parsed.get("status"),
            "message": parsed.get("message"),
            "timestamp": parsed.get("timestamp"),
        }
        if parsed.get("metadata"):
            data["metadata"] = parsed["metadata"]
        return StreamEvent(type="status", data=data)
    if kind == "search_results":
        return StreamEvent(
            type="search_results",
            data={
                "query": parsed.get("query"),
                "sources": parsed.get("sources", []),
                "strategy": parsed.get("strategy"),
                "totalResults": parsed.get("totalResults"),
            },
        )
    return StreamEvent(type="context_cards", data=parsed.get("cards") or [])


def parse_stream_chunk(chunk: str) -> list[StreamEvent]:
    """Split a chunk into structured events plus one trailing content event.

    Lines that are not well-formed event objects count as content, and the
    newlines between content lines are kept.
    """
    events: list[StreamEvent] = []
    lines = chunk.split("\n")
    content = ""

    for i, line in enumerate(lines):
        event = _parse_event_line(line)
        if event is not None:
            events.append(event)
            continue
        if line.strip():
            content += line
        if i < len(lines) - 1:
            content += "\n"

    if content:
        events.append(StreamEvent(type="content", text=content))
    return events


@dataclass
class StreamHandlers:
    on_status: Callable[[dict[str, Any]], None] | None = None
    on_search_results: Callable[[dict[str, Any]], None] | None = None
    on_context_cards: Callable[[list[dict[str, Any]]], None] | None = None
    on_content: Callable[[str], None] | None = None


def process_stream_chunk(chunk: str, handlers: StreamHandlers) -> None:
    for event in parse_stream_chunk(chunk):
        if event.type == "status" and handlers.on_status:
            handlers.on_status(event.data)
        elif event.type == "search_results" and handlers.on_search_results:
            handlers.on_search_results(event.data)
        elif event.type == "context_cards" and handlers.on_context_cards:
            handlers.on_context_cards(event.data)
        elif event.type == "content" and handlers.on_content:
            handlers.on_content(event.text)


@dataclass
class StreamParser:
    """Incremental parser for raw response bytes.

    Multi-byte characters split across chunks are held back until complete.
    """

    _decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")()
    )

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        text = self._decoder.decode(chunk)
        return parse_stream_chunk(text) if text else []
