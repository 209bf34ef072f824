from __future__ import annotations

from typing import Any

from rynk.models.events import EventType, SSEEvent, StatusType, now_ms


def status(status_type: StatusType | str, message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(
        event=EventType.STATUS,
        data={
            "status": StatusType(status_type).value,
            "message": message,
            "timestamp": now_ms(),
            **kwargs,
        },
    )


def content(text: str) -> SSEEvent:
    return SSEEvent(event=EventType.CONTENT, data={"content": text})


def meta(**kwargs: Any) -> SSEEvent:
    """Message ids and other bookkeeping the client needs to reconcile its state."""
    return SSEEvent(event=EventType.META, data={k: v for k, v in kwargs.items() if v is not None})


def error(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message, **kwargs})
