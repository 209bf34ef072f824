"""Runs the planned source fetches concurrently."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable

from loguru import logger

from rynk.services.agentic.types import Citation, SourcePlan, SourceResult
from rynk.services.logger import log_source_fetch
from rynk.tools import exa_search, perplexity_search, wikipedia_search
from rynk.tools.market_data import MarketDataClient, market_data


class SourceOrchestrator:
    def __init__(self, market: MarketDataClient | None = None):
        self.market = market or market_data

    async def _timed(self, source: str, query: str, fetch: Awaitable[SourceResult]) -> SourceResult:
        """Await one fetch, turning any exception into an errored result."""
        started = time.monotonic()
        try:
            result = await fetch
        except Exception as exc:
            result = SourceResult(source=source, error=str(exc) or type(exc).__name__)
        duration_ms = int((time.monotonic() - started) * 1000)
        log_source_fetch(
            source=source,
            query=query,
            status="error" if result.error else "success",
            results=len(result.citations),
            duration_ms=duration_ms,
            error=result.error,
        )
        return result

    async def fetch_from_exa(self, query: str) -> SourceResult:
        results = await exa_search.search(query)
        return SourceResult(
            source="exa",
            data=results,
            citations=[Citation(url=r.url, title=r.title, snippet=r.snippet) for r in results],
        )

    async def fetch_from_perplexity(self, query: str) -> SourceResult:
        answer = await perplexity_search.ask(query)
        return SourceResult(
            source="perplexity",
            data=answer.content,
            citations=[Citation(url=url, title=f"Source {i + 1}") for i, url in enumerate(answer.citations)],
        )

    async def fetch_from_wikipedia(self, titles: list[str]) -> SourceResult:
        summaries = await wikipedia_search.fetch_summaries(titles)
        return SourceResult(
            source="wikipedia",
            data=summaries,
            citations=[Citation(url=s.url, title=s.title, snippet=s.extract) for s in summaries],
        )

    async def fetch_from_financial(self, kind: str, symbols: list[str]) -> SourceResult:
        quotes = await self.market.fetch_market_data(symbols, kind)
        return SourceResult(source="financial", data=[q for q in quotes if q["data"]])

    async def execute_source_plan(self, plan: SourcePlan) -> list[SourceResult]:
        logger.info(f"[SourceOrchestrator] Executing plan: sources={plan.sources} reasoning={plan.reasoning}")
        queries = plan.search_queries
        fetches: list[Awaitable[SourceResult]] = []

        if "exa" in plan.sources and queries.exa:
            fetches.append(self._timed("exa", queries.exa, self.fetch_from_exa(queries.exa)))
        if "perplexity" in plan.sources and queries.perplexity:
            fetches.append(
                self._timed("perplexity", queries.perplexity, self.fetch_from_perplexity(queries.perplexity))
            )
        if "wikipedia" in plan.sources and queries.wikipedia:
            fetches.append(
                self._timed(
                    "wikipedia",
                    ", ".join(queries.wikipedia),
                    self.fetch_from_wikipedia(queries.wikipedia),
                )
            )
        if "financial" in plan.sources and queries.financial:
            financial = queries.financial
            fetches.append(
                self._timed(
                    "financial",
                    ", ".join(financial.symbols),
                    self.fetch_from_financial(financial.kind, financial.symbols),
                )
            )

        results = list(await asyncio.gather(*fetches))
        failed = sum(1 for r in results if r.error)
        logger.info(f"[SourceOrchestrator] Completed: {len(results) - failed} successful, {failed} failed")
        return results


def financial_summary(result: SourceResult) -> str:
    """Plain-text rendering of market quotes for the synthesis context."""
    lines = []
    for item in result.data or []:
        quote = item["data"]
        price = quote.get("price")
        change = quote.get("change_percent", quote.get("price_change_percent_24h"))
        line = f"{quote.get('name') or item['symbol']} ({quote.get('symbol') or item['symbol']}): {price}"
        if change is not None:
            line += f" ({change:+.2f}%)"
        lines.append(line)
    return "\n".join(lines)
