"""
Cosine-similarity ranking over embedding vectors.

Used by step suggestion (rank steps against an uploaded document) and by
context retrieval (re-rank rows returned by the match_project_memories RPC).

Usage:
    from strategist_memory.core.similarity import search

    ranked = search(
        query_vector=document_vector,
        corpus=[{"id": "s1", "embedding": [...]}, {"id": "s2", "embedding": [...]}],
        top_k=5,
        vector_of=lambda step: step["embedding"],
    )
    for scored in ranked:
        print(scored.item["id"], scored.score)
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

import numpy as np


@dataclass(frozen=True)
class ScoredItem:
    """A corpus item with its similarity to the query."""

    item: Any
    score: float


def cosine_similarity(
    embedding_a: Sequence[float] | np.ndarray,
    embedding_b: Sequence[float] | np.ndarray,
) -> float:
    """
    Compute cosine similarity between two embeddings.

    Returns 0.0 (never raises) when either vector is empty or has zero
    magnitude, or when the dimensions differ. The result is clamped to
    [-1, 1] to absorb floating-point drift.
    """
    a = np.asarray(embedding_a, dtype=float).ravel()
    b = np.asarray(embedding_b, dtype=float).ravel()

    if a.size == 0 or a.shape != b.shape:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0 or not np.isfinite(norm_a * norm_b):
        return 0.0

    score = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def rank(scored: Iterable[tuple[Any, float]], top_k: int | None = None) -> list[ScoredItem]:
    """
    Sort precomputed (item, score) pairs by score descending.

    The sort is stable: equal scores keep their input order.
    """
    items = [ScoredItem(item=item, score=float(score)) for item, score in scored]
    items.sort(key=lambda s: s.score, reverse=True)
    if top_k is not None:
        items = items[: max(top_k, 0)]
    return items


def search(
    query_vector: Sequence[float],
    corpus: Iterable[Any],
    top_k: int,
    vector_of: Callable[[Any], Sequence[float] | None] = lambda item: item,
) -> list[ScoredItem]:
    """
    Rank corpus items by cosine similarity to query_vector.

    Args:
        query_vector: Embedding of the query
        corpus: Items to rank
        top_k: Maximum number of results
        vector_of: Extracts an item's embedding; items without one score 0.0

    Returns:
        Up to top_k ScoredItems, best first, ties in corpus order
    """
    scored = []
    for item in corpus:
        vector = vector_of(item)
        score = cosine_similarity(query_vector, vector) if vector is not None else 0.0
        scored.append((item, score))
    return rank(scored, top_k)
