"""Database operations for project memory entries.

One row per published document in ``project_document_embeddings``, keyed by
document_id. These rows are what the assistant retrieves and what the project
profile is folded from.
"""

from typing import Any
from uuid import UUID

from strategist_memory.core.errors import StoreWriteFailed
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "project_document_embeddings"
MATCH_RPC = "match_project_memories"


# =============================================================================
# Writes
# =============================================================================


def upsert_memory_entry(entry: dict[str, Any]) -> None:
    """
    Create or replace the memory entry for ``entry["document_id"]``.

    Raises:
        StoreWriteFailed: If the upsert fails
    """
    try:
        get_supabase().table(TABLE).upsert(entry, on_conflict="document_id").execute()
    except Exception as e:
        logger.error(f"Failed to upsert memory entry for document {entry.get('document_id')}: {e}")
        raise StoreWriteFailed("Failed to store project memory.") from e


def delete_memory_entry(document_id: UUID | str) -> None:
    """
    Delete the memory entry for a document. Succeeds when no row exists.

    Raises:
        StoreWriteFailed: If the delete fails
    """
    try:
        get_supabase().table(TABLE).delete().eq("document_id", str(document_id)).execute()
    except Exception as e:
        logger.error(f"Failed to delete memory entry for document {document_id}: {e}")
        raise StoreWriteFailed("Failed to remove project memory.") from e


# =============================================================================
# Reads
# =============================================================================


def list_recent_entries(project_id: UUID | str, limit: int) -> list[dict]:
    """Most recently updated memory entries of a project, newest first."""
    response = (
        get_supabase()
        .table(TABLE)
        .select("document_id, title, summary, key_decisions, tags, updated_at")
        .eq("project_id", str(project_id))
        .order("updated_at", desc=True)
        .limit(limit)
        .execute()
    )
    return response.data or []


def match_memories(
    project_id: UUID | str,
    query_embedding: list[float],
    match_count: int,
    min_similarity: float,
) -> list[dict]:
    """
    Nearest memory entries by cosine similarity via the match RPC.

    Returns:
        Rows with document_id, title, summary, key_decisions, tags,
        chunk_preview and similarity
    """
    response = (
        get_supabase()
        .rpc(
            MATCH_RPC,
            {
                "input_project_id": str(project_id),
                "query_embedding": query_embedding,
                "match_count": match_count,
                "min_similarity": min_similarity,
            },
        )
        .execute()
    )
    return response.data or []
