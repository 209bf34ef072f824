"""Rynk - command line helpers

Run a research query or a one-off chat against the configured providers, or
clean up expired guest sessions and cached market data.
"""

import argparse
import asyncio
import json

from rynk import llm_client
from rynk.models.events import EventType
from rynk.services.agentic.research import run_research
from rynk.services.finance_cache import finance_cache
from rynk.services.guest import cleanup_old_guest_sessions
from rynk.services.stream_manager import StreamManager
from rynk.services.stream_parser import StreamParser


async def research(query: str):
    """Print status lines and the synthesized answer for ``query``."""
    print(f"Research query: {query}")
    print("-" * 50)

    async for event in run_research(query):
        if event.event == EventType.STATUS:
            print(f"\n[~] {event.data.get('message', '')}")
        elif event.event == EventType.CONTENT:
            print(event.data.get("content", ""), end="", flush=True)
        elif event.event == EventType.ERROR:
            print(f"\n[!] Error: {event.data.get('message', 'Unknown error')}")
    print()


async def chat(message: str):
    """Stream a single-message chat through the same framing the API uses."""

    async def produce(stream: StreamManager) -> None:
        async with llm_client.get_ai_provider().stream(
            [{"role": "user", "content": message}], caller="cli"
        ) as reply:
            async for text in reply.text_stream:
                stream.send_text(text)
        stream.close()

    stream = StreamManager()
    stream.run(produce)
    parser = StreamParser()
    async for chunk in stream.iter_bytes():
        for event in parser.feed(chunk):
            if event.type == "content":
                print(event.text, end="", flush=True)
            elif event.type == "status":
                print(f"\n[~] {json.dumps(event.data)}")
    print()


async def cleanup():
    sessions = await cleanup_old_guest_sessions()
    cached = await finance_cache.cleanup()
    print(f"Removed {sessions} guest sessions and {cached} cache entries")


def main():
    parser = argparse.ArgumentParser(description="Rynk command line helpers")
    commands = parser.add_subparsers(dest="command", required=True)

    research_cmd = commands.add_parser("research", help="Run an agentic research query")
    research_cmd.add_argument("--query", "-q", required=True, help="Research query")

    chat_cmd = commands.add_parser("chat", help="Send one chat message")
    chat_cmd.add_argument("--message", "-m", required=True, help="Message to send")

    commands.add_parser("cleanup", help="Remove stale guest sessions and expired cache rows")

    args = parser.parse_args()

    if args.command == "research":
        asyncio.run(research(args.query))
    elif args.command == "chat":
        asyncio.run(chat(args.message))
    else:
        asyncio.run(cleanup())


if __name__ == "__main__":
    main()
