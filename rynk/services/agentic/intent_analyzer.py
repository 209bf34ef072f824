"""Single-call intent analysis and source planning via tool calling."""

from __future__ import annotations

from typing import Any

from loguru import logger

from rynk import llm_client
from rynk.config import settings
from rynk.services.agentic.types import (
    CATEGORIES,
    EXPECTED_TYPES,
    SOURCES,
    FinancialQuery,
    QuickAnalysis,
    SearchQueries,
    SourcePlan,
)
from rynk.services.prompt_sanitizer import escape_delimiters
from rynk.services.prompt_store import render_prompt

PLAN_RESEARCH_TOOL: dict[str, Any] = {
    "name": "plan_research",
    "description": "Analyze query and create a research plan with source selection",
    "parameters": {
        "type": "object",
        "properties": {
            "category": {
                "type": "string",
                "enum": list(CATEGORIES),
                "description": "Category of the user query",
            },
            "needsWebSearch": {
                "type": "boolean",
                "description": "Whether external information is needed",
            },
            "needsReasoning": {
                "type": "boolean",
                "description": (
                    "Whether deep chain-of-thought reasoning is needed "
                    '(for complex analysis, comparisons, coding, or "why" questions)'
                ),
            },
            "confidence": {"type": "number", "description": "Confidence score (0-1)"},
            "sources": {
                "type": "array",
                "items": {"type": "string", "enum": list(SOURCES)},
                "description": "List of sources to query",
            },
            "reasoning": {"type": "string", "description": "Explanation for the plan"},
            "searchQueries": {
                "type": "object",
                "properties": {
                    "exa": {"type": "string"},
                    "perplexity": {"type": "string"},
                    "wikipedia": {"type": "array", "items": {"type": "string"}},
                    "financial": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": ["stock", "crypto"]},
                            "symbols": {"type": "array", "items": {"type": "string"}},
                        },
                    },
                },
                "description": "Specific queries for each selected source",
            },
            "expectedType": {"type": "string", "enum": list(EXPECTED_TYPES)},
        },
        "required": [
            "category",
            "needsWebSearch",
            "needsReasoning",
            "confidence",
            "sources",
            "reasoning",
            "searchQueries",
            "expectedType",
        ],
    },
}


def fallback_plan(query: str) -> tuple[QuickAnalysis, SourcePlan]:
    return (
        QuickAnalysis(
            category="complex",
            needs_web_search=True,
            needs_reasoning=False,
            confidence=0.5,
        ),
        SourcePlan(
            sources=["perplexity"],
            reasoning="Fallback plan due to analysis error",
            search_queries=SearchQueries(exa=query, perplexity=query),
            expected_type="deep_research",
        ),
    )


def _format_history(history: list[dict[str, Any]], limit: int) -> str:
    recent = "\n".join(f"{m.get('role')}: {m.get('content')}" for m in history[-limit:])
    return f"\nRecent conversation:\n{recent}\n" if recent else ""


def parse_plan(args: dict[str, Any]) -> tuple[QuickAnalysis, SourcePlan]:
    """Map raw ``plan_research`` arguments onto typed plan objects."""
    queries = args.get("searchQueries") or {}
    financial = queries.get("financial") or None
    if financial and financial.get("symbols"):
        financial_query = FinancialQuery(
            kind="crypto" if financial.get("type") == "crypto" else "stock",
            symbols=[str(s) for s in financial["symbols"]],
        )
    else:
        financial_query = None

    analysis = QuickAnalysis(
        category=args.get("category") or "complex",
        needs_web_search=bool(args.get("needsWebSearch")),
        needs_reasoning=bool(args.get("needsReasoning")),
        confidence=float(args.get("confidence") or 0.5),
    )
    plan = SourcePlan(
        sources=[s for s in args.get("sources") or [] if s in SOURCES],
        reasoning=args.get("reasoning") or "",
        search_queries=SearchQueries(
            exa=queries.get("exa"),
            perplexity=queries.get("perplexity"),
            wikipedia=list(queries.get("wikipedia") or []),
            financial=financial_query,
        ),
        expected_type=args.get("expectedType") or "deep_research",
    )
    return analysis, plan


async def analyze_intent(
    query: str,
    history: list[dict[str, Any]] | None = None,
) -> tuple[QuickAnalysis, SourcePlan]:
    """Categorize the query and pick research sources in one request.

    Any failure (missing key, API error, no tool call, bad arguments) yields
    the fallback plan instead of raising.
    """
    if not settings.groq_api_key:
        logger.error("[analyze_intent] Missing GROQ_API_KEY")
        return fallback_plan(query)

    messages = [
        {"role": "system", "content": render_prompt("research.planner_system")},
        {
            "role": "user",
            "content": render_prompt(
                "research.planner_user",
                context=_format_history(history or [], 3),
                query=escape_delimiters(query),
            ),
        },
    ]
    try:
        args = await llm_client.groq().call_tool(
            messages,
            PLAN_RESEARCH_TOOL,
            model=settings.groq_tools_model,
            temperature=0,
            caller="intent_analyzer",
        )
        analysis, plan = parse_plan(args)
    except Exception as exc:
        logger.error(f"[analyze_intent] Error: {exc}")
        return fallback_plan(query)

    logger.info(
        f"[analyze_intent] category={analysis.category} sources={plan.sources} "
        f"expected={plan.expected_type}"
    )
    return analysis, plan
