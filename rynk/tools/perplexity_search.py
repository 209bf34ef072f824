from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from rynk.config import settings


@dataclass
class PerplexityAnswer:
    content: str
    citations: list[str] = field(default_factory=list)


async def ask(query: str, *, max_tokens: int = 1000, temperature: float = 0.5) -> PerplexityAnswer:
    """Ask Perplexity's search-grounded model and return its answer plus cited URLs."""
    api_key = settings.perplexity_api_key
    if not api_key:
        raise ValueError("PERPLEXITY_API_KEY not configured")

    async with httpx.AsyncClient() as client:
        response = await client.post(
            f"{settings.perplexity_base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": settings.perplexity_model,
                "messages": [{"role": "user", "content": query}],
                "temperature": temperature,
                "max_tokens": max_tokens,
                "return_citations": True,
            },
            timeout=settings.search_timeout_seconds,
        )
        if response.status_code != 200:
            raise RuntimeError(f"Perplexity API error: {response.status_code} - {response.text[:200]}")
        data = response.json()

    choices = data.get("choices") or [{}]
    content = ((choices[0] or {}).get("message") or {}).get("content") or ""
    return PerplexityAnswer(content=content, citations=list(data.get("citations") or []))
