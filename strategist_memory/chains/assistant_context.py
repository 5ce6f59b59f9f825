"""Grounding context for the strategy assistant.

Combines the stored project profile with the published documents most
relevant to the user's question.
"""

from strategist_memory.chains.project_profile import build_profile_digest
from strategist_memory.chains.retrieve_context import PREVIEW_CHARS, retrieve_context
from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import truncate_to_chars
from strategist_memory.core.model_gateway import ModelGateway
from strategist_memory.db.project_profiles import get_profile_text

NO_MEMORIES = "No relevant published documents found."


def format_memories(results: list[dict], max_chars: int) -> str:
    """Numbered Document/Summary/Tags blocks, stopping at *max_chars*."""
    if not results:
        return NO_MEMORIES

    blocks: list[str] = []
    used = 0
    for index, result in enumerate(results, start=1):
        lines = [
            f"{index}. Document: {result.get('title') or 'Untitled document'}",
            f"  Summary: {truncate_to_chars(result.get('summary') or '', PREVIEW_CHARS)}",
        ]
        if result.get("tags"):
            lines.append(f"  Tags: {', '.join(result['tags'])}")
        block = "\n".join(lines)

        # Blocks are joined with a blank line
        cost = len(block) + (2 if blocks else 0)
        if used + cost > max_chars:
            break
        blocks.append(block)
        used += cost

    return "\n\n".join(blocks) if blocks else NO_MEMORIES


def build_assistant_context(
    project: dict,
    query_text: str,
    gateway: ModelGateway,
    settings: Settings | None = None,
) -> dict:
    """
    Assemble the profile and memory block for one assistant turn.

    Returns:
        dict with project_profile, memories (formatted text) and sources
    """
    settings = settings or get_settings()

    profile = get_profile_text(project["id"]) or build_profile_digest(project, [])
    results = retrieve_context(
        project["id"], query_text, gateway, top_k=settings.CONTEXT_TOP_K, settings=settings
    )

    return {
        "project_profile": profile,
        "memories": format_memories(results, settings.ASSISTANT_MEMORY_CHAR_LIMIT),
        "sources": [
            {
                "document_id": r["document_id"],
                "title": r["title"],
                "chunk_preview": r["chunk_preview"],
                "relevance_score": r["relevance_score"],
            }
            for r in results
        ],
    }
