"""Retrieve project memory relevant to a free-text query."""

from uuid import UUID

from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import truncate_to_chars
from strategist_memory.core.errors import InvalidRequest
from strategist_memory.core.logging import get_logger
from strategist_memory.core.model_gateway import ModelGateway
from strategist_memory.core.similarity import rank
from strategist_memory.db.project_memory import match_memories

logger = get_logger(__name__)

PREVIEW_CHARS = 220


def retrieve_context(
    project_id: UUID | str,
    query_text: str,
    gateway: ModelGateway,
    top_k: int | None = None,
    settings: Settings | None = None,
) -> list[dict]:
    """
    Find the memory entries closest to *query_text*.

    Ranking is delegated to the match_project_memories RPC with the
    CONTEXT_MIN_SIMILARITY floor; the returned rows are re-ranked by cosine
    similarity here so the order does not depend on the RPC.

    Returns:
        Up to top_k dicts (document_id, title, summary, key_decisions, tags,
        chunk_preview, relevance_score), best first

    Raises:
        InvalidRequest: If query_text is blank or top_k < 1
        EmbeddingFailed: If the query cannot be embedded
    """
    settings = settings or get_settings()
    query = (query_text or "").strip()
    if not query:
        raise InvalidRequest("query_text is required.")

    top_k = settings.CONTEXT_TOP_K if top_k is None else top_k
    if top_k < 1:
        raise InvalidRequest("top_k must be at least 1.")

    query_vector = gateway.embed(
        truncate_to_chars(query, settings.EMBEDDING_CHAR_LIMIT),
        function_name="retrieve-context (embedding)",
    )

    rows = match_memories(
        project_id,
        query_vector,
        match_count=top_k,
        min_similarity=settings.CONTEXT_MIN_SIMILARITY,
    )
    ranked = rank(((row, row.get("similarity") or 0.0) for row in rows), top_k)

    logger.debug(
        f"Context search for project {project_id}: {len(rows)} rows, {len(ranked)} kept",
        extra={"project_id": str(project_id)},
    )

    results = []
    for scored in ranked:
        row = scored.item
        summary = row.get("summary") or ""
        preview = row.get("chunk_preview") or summary
        results.append(
            {
                "document_id": row.get("document_id"),
                "title": row.get("title"),
                "summary": summary,
                "key_decisions": row.get("key_decisions") or [],
                "tags": row.get("tags") or [],
                "chunk_preview": truncate_to_chars(preview, PREVIEW_CHARS),
                "relevance_score": scored.score,
            }
        )
    return results
