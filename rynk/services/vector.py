"""Brute-force similarity search over stored message embeddings."""

from __future__ import annotations

import math
from typing import Any


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions don't match: {len(a)} vs {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def search_embeddings(
    query_vector: list[float],
    embeddings: list[dict[str, Any]],
    limit: int = 10,
    min_score: float = 0.3,
) -> list[dict[str, Any]]:
    """Rank embedding rows by similarity to ``query_vector``.

    Each row needs a ``vector`` key; rows scoring below ``min_score`` or with a
    mismatched dimension are skipped. Results carry a ``score`` and are sorted
    best first.
    """
    scored: list[dict[str, Any]] = []
    for row in embeddings:
        vector = row.get("vector") or []
        if len(vector) != len(query_vector):
            continue
        score = cosine_similarity(query_vector, vector)
        if score >= min_score:
            scored.append({**row, "score": score})

    scored.sort(key=lambda r: r["score"], reverse=True)
    return scored[:limit]
