"""Combines source results into one cited answer."""

from __future__ import annotations

from typing import Any, AsyncIterator

from rynk import llm_client
from rynk.config import settings
from rynk.services.agentic.source_orchestrator import financial_summary
from rynk.services.agentic.types import Citation, SourceResult, SynthesisResult
from rynk.services.prompt_store import render_prompt


class AllSourcesFailedError(RuntimeError):
    pass


class ResponseSynthesizer:
    def __init__(self, provider: llm_client.ChatProvider | None = None, model: str | None = None):
        self._provider = provider
        self.model = model

    @property
    def provider(self) -> llm_client.ChatProvider:
        return self._provider or llm_client.openrouter()

    @staticmethod
    def successful(results: list[SourceResult]) -> list[SourceResult]:
        ok = [r for r in results if r.ok]
        if not ok:
            raise AllSourcesFailedError("All sources failed to provide data")
        return ok

    @staticmethod
    def prepare_context(sources: list[SourceResult]) -> str:
        parts: list[str] = []
        for source in sources:
            parts.append(f"\n--- Source: {source.source.upper()} ---")
            if source.source == "exa":
                for i, item in enumerate(source.data[:5], start=1):
                    parts.append(f"\n[{i}] {item.title}")
                    if item.highlights:
                        parts.append(item.highlights[0])
                    elif item.text:
                        parts.append(item.text[:500])
            elif source.source == "perplexity":
                parts.append(str(source.data))
            elif source.source == "wikipedia":
                for article in source.data:
                    parts.append(f"\n{article.title}")
                    parts.append(article.extract or "")
            elif source.source == "financial":
                parts.append(financial_summary(source))
        return "\n".join(parts)

    @staticmethod
    def collect_citations(sources: list[SourceResult]) -> list[Citation]:
        citations: list[Citation] = []
        for source in sources:
            for citation in source.citations:
                if not citation.url:
                    continue
                citations.append(
                    Citation(
                        url=citation.url,
                        title=citation.title or "Untitled",
                        snippet=citation.snippet,
                        source=source.source,
                    )
                )
        return citations

    def build_messages(
        self,
        query: str,
        context: str,
        citations: list[Citation],
        history: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, str]]:
        recent = "\n".join(f"{m.get('role')}: {m.get('content')}" for m in (history or [])[-5:])
        citation_list = "\n".join(f"[{i}] {c.title} ({c.source})" for i, c in enumerate(citations, start=1))
        return [
            {"role": "system", "content": render_prompt("research.synthesis_system")},
            {
                "role": "user",
                "content": render_prompt(
                    "research.synthesis_user",
                    history=f"\nRecent conversation:\n{recent}\n" if recent else "",
                    query=query,
                    context=context,
                    citations=citation_list,
                ),
            },
        ]

    def _prepare(
        self,
        query: str,
        results: list[SourceResult],
        history: list[dict[str, Any]] | None,
    ) -> tuple[list[dict[str, str]], list[Citation]]:
        sources = self.successful(results)
        citations = self.collect_citations(sources)
        return self.build_messages(query, self.prepare_context(sources), citations, history), citations

    async def synthesize(
        self,
        query: str,
        results: list[SourceResult],
        history: list[dict[str, Any]] | None = None,
    ) -> SynthesisResult:
        messages, citations = self._prepare(query, results, history)
        content = await self.provider.complete(
            messages,
            model=self.model,
            temperature=settings.research_synthesis_temperature,
            max_tokens=settings.research_synthesis_max_tokens,
            caller="response_synthesizer",
        )
        if not content:
            raise RuntimeError("No content in synthesis response")
        return SynthesisResult(content=content, citations=citations)

    async def synthesize_stream(
        self,
        query: str,
        results: list[SourceResult],
        history: list[dict[str, Any]] | None = None,
        *,
        citations_out: list[Citation] | None = None,
    ) -> AsyncIterator[str]:
        """Stream the answer text. Citations are appended to ``citations_out`` up front."""
        messages, citations = self._prepare(query, results, history)
        if citations_out is not None:
            citations_out.extend(citations)
        async with self.provider.stream(
            messages,
            model=self.model,
            temperature=settings.research_synthesis_temperature,
            max_tokens=settings.research_synthesis_max_tokens,
            caller="response_synthesizer",
        ) as stream:
            async for text in stream.text_stream:
                yield text
