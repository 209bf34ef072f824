"""Tests for the line-delimited JSON chat stream, writer and reader side."""
import json

import pytest

from rynk.models.events import ContextCard, StatusType
from rynk.services.stream_manager import StreamManager
from rynk.services.stream_parser import StreamParser, StreamHandlers, parse_stream_chunk, process_stream_chunk


async def drain(stream: StreamManager) -> str:
    parts = []
    async for chunk in stream.iter_bytes():
        parts.append(chunk.decode("utf-8"))
    return "".join(parts)


@pytest.mark.asyncio
async def test_producer_output_parses_back():
    async def produce(stream):
        stream.send_status(StatusType.ANALYZING, "Analyzing request...")
        stream.send_search_results(
            query="q",
            sources=[{"url": "https://a.example", "title": "A"}],
            strategy=["exa"],
            total_results=1,
        )
        stream.send_context_cards([ContextCard(source="Old chat", snippet="hi", score=0.9, conversation_id="c1")])
        stream.send_text("Hello ")
        stream.send_text("world")
        stream.close()

    stream = StreamManager()
    stream.run(produce)
    body = await drain(stream)

    events = parse_stream_chunk(body)
    assert [e.type for e in events] == ["status", "search_results", "context_cards", "status", "content"]
    assert events[1].data["totalResults"] == 1
    assert events[2].data[0]["conversationId"] == "c1"
    assert events[3].data["status"] == "complete"
    assert events[4].text == "Hello world\n"
    assert body.endswith("\n")


@pytest.mark.asyncio
async def test_producer_failure_becomes_error_status():
    async def produce(stream):
        raise RuntimeError("provider down")

    stream = StreamManager()
    stream.run(produce)
    body = await drain(stream)

    last_line = body.strip().splitlines()[-1]
    payload = json.loads(last_line)
    assert payload["status"] == "error"
    assert payload["message"] == "provider down"


@pytest.mark.asyncio
async def test_writes_after_close_are_dropped():
    stream = StreamManager()
    stream.close()
    assert stream.send_text("late") is False


def test_invalid_event_json_is_content():
    events = parse_stream_chunk('{"type":"status", broken\nplain text')
    assert [e.type for e in events] == ["content"]
    assert events[0].text.startswith('{"type":"status", broken')


def test_handlers_dispatch():
    seen = []
    handlers = StreamHandlers(
        on_status=lambda d: seen.append(("status", d["status"])),
        on_content=lambda t: seen.append(("content", t)),
    )
    process_stream_chunk('{"type":"status","status":"searching","message":"m","timestamp":1}\nabc', handlers)
    assert seen == [("status", "searching"), ("content", "abc")]


def test_parser_holds_back_split_multibyte_characters():
    parser = StreamParser()
    encoded = "héllo".encode("utf-8")
    first = parser.feed(encoded[:2])
    second = parser.feed(encoded[2:])
    text = "".join(e.text for e in first + second)
    assert text == "héllo"


@pytest.mark.asyncio
async def test_status_after_text_starts_on_its_own_line():
    stream = StreamManager()
    stream.send_text("Hello world")
    stream.send_status(StatusType.SYNTHESIZING, "Still going")
    stream.send_text("line\n")
    stream.close()
    body = await drain(stream)

    lines = body.split("\n")
    assert lines[0] == "Hello world"
    assert json.loads(lines[1])["status"] == "synthesizing"
    assert lines[2] == "line"
    assert json.loads(lines[3])["status"] == "complete"
    statuses = [e.data["status"] for e in parse_stream_chunk(body) if e.type == "status"]
    assert statuses == ["synthesizing", "complete"]
