from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from rynk.config import settings


@dataclass
class ExaResult:
    """One Exa search hit with its page text and highlights."""
    title: str
    url: str
    text: str = ""
    highlights: list[str] = field(default_factory=list)
    published_date: str | None = None

    @property
    def snippet(self) -> str:
        return self.highlights[0] if self.highlights else self.text[:200]


async def search(query: str, *, num_results: int = 10) -> list[ExaResult]:
    """Semantic web search via Exa.

    API: POST https://api.exa.ai/search
    Headers:
        - x-api-key: <api_key>
    """
    api_key = settings.exa_api_key
    if not api_key:
        raise ValueError("EXA_API_KEY not configured")

    body: dict[str, Any] = {
        "query": query,
        "type": "auto",
        "num_results": num_results,
        "contents": {"text": True, "highlights": True},
        "use_autoprompt": True,
    }

    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{settings.exa_base_url}/search",
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            json=body,
            timeout=settings.search_timeout_seconds,
        )
        if response.status_code != 200:
            raise RuntimeError(f"Exa API error: {response.status_code}")
        data = response.json()

    return [
        ExaResult(
            title=r.get("title") or "",
            url=r.get("url") or "",
            text=r.get("text") or "",
            highlights=list(r.get("highlights") or []),
            published_date=r.get("publishedDate"),
        )
        for r in data.get("results") or []
    ]
