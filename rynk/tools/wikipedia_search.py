from __future__ import annotations

import asyncio
from dataclasses import dataclass
from urllib.parse import quote

import httpx
from loguru import logger

from rynk.config import settings

MAX_TITLES = 3


@dataclass
class WikiSummary:
    title: str
    url: str
    extract: str


async def _fetch_summary(client: httpx.AsyncClient, title: str) -> WikiSummary | None:
    url = f"{settings.wikipedia_base_url}/api/rest_v1/page/summary/{quote(title, safe='')}"
    try:
        response = await client.get(url)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"[Wikipedia] Error fetching \"{title}\": {exc}")
        return None

    page_url = ((data.get("content_urls") or {}).get("desktop") or {}).get("page") or ""
    return WikiSummary(title=data.get("title") or title, url=page_url, extract=data.get("extract") or "")


async def fetch_summaries(titles: list[str]) -> list[WikiSummary]:
    """Fetch page summaries for up to three titles; titles that fail are skipped."""
    if not titles:
        return []
    async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
        results = await asyncio.gather(*(_fetch_summary(client, t) for t in titles[:MAX_TITLES]))
    return [r for r in results if r is not None]
