"""Writer side of the line-delimited JSON chat stream.

A producer task pushes status updates, search results, context cards and raw
text through a ``StreamManager``; the HTTP response drains it with
``iter_bytes()``. When the client goes away the response generator is closed,
the manager is marked closed, and every later write is dropped with a warning
so the producer can stop.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable

from loguru import logger

from rynk.models.events import (
    ContextCard,
    ContextCardsUpdate,
    SearchResultsUpdate,
    StatusType,
    StatusUpdate,
    encode_line,
)

_END = object()


class StreamManager:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        self._finished = False
        self._task: asyncio.Task | None = None
        # Raw text written since the last newline; event frames must start on a fresh line
        self._mid_line = False

    def _enqueue(self, data: Any) -> bool:
        if self.closed or self._finished:
            logger.warning("[StreamManager] Failed to enqueue data (stream is closed)")
            return False
        self._queue.put_nowait(data)
        return True

    def _send_frame(self, line: str) -> bool:
        if self._mid_line:
            line = "\n" + line
        if not self._enqueue(line):
            return False
        self._mid_line = False
        return True

    def send_status(
        self,
        status: StatusType | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        update = StatusUpdate(status=StatusType(status), message=message, metadata=metadata)
        return self._send_frame(encode_line(update))

    def send_search_results(
        self,
        *,
        query: str,
        sources: list[dict[str, Any]],
        strategy: list[str],
        total_results: int,
    ) -> bool:
        update = SearchResultsUpdate(
            query=query,
            sources=sources,
            strategy=strategy,
            total_results=total_results,
        )
        return self._send_frame(encode_line(update))

    def send_context_cards(self, cards: list[ContextCard]) -> bool:
        return self._send_frame(encode_line(ContextCardsUpdate(cards=cards)))

    def send_text(self, text: str) -> bool:
        if not self._enqueue(text):
            return False
        if text:
            self._mid_line = not text.endswith("\n")
        return True

    def close(self) -> None:
        """Send the completion status and end the stream."""
        self.send_status(StatusType.COMPLETE, "Done")
        self._finish()

    def error(self, err: BaseException | str) -> None:
        """Report an error status and end the stream."""
        message = str(err) if str(err) else "An error occurred"
        self.send_status(StatusType.ERROR, message)
        self._finish()

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(_END)

    def run(self, producer: Callable[["StreamManager"], Awaitable[None]]) -> asyncio.Task:
        """Run a producer in the background; an uncaught failure becomes an error status."""
        self._task = asyncio.create_task(self._run(producer))
        return self._task

    async def _run(self, producer: Callable[["StreamManager"], Awaitable[None]]) -> None:
        try:
            await producer(self)
        except Exception as exc:
            logger.exception(f"[StreamManager] Producer failed: {exc}")
            self.error(exc)
        finally:
            self._finish()

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    break
                yield item.encode("utf-8")
        finally:
            self.closed = True
