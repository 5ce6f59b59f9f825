"""Database operations for document chunks.

A document's chunk set is always replaced as a whole. Embeddings start out
null and are filled one chunk at a time by the embed stage.
"""

from uuid import UUID

from strategist_memory.core.errors import StoreWriteFailed
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "document_chunks"


def list_chunks(document_id: UUID | str) -> list[dict]:
    """All chunks of a document, ordered by chunk_index."""
    response = (
        get_supabase()
        .table(TABLE)
        .select("id, chunk_index, chunk_text, embedding, document_version")
        .eq("document_id", str(document_id))
        .order("chunk_index")
        .execute()
    )
    return response.data or []


def list_unembedded_chunks(document_id: UUID | str) -> list[dict]:
    """Chunks whose embedding is still null, ordered by chunk_index."""
    response = (
        get_supabase()
        .table(TABLE)
        .select("id, chunk_index, chunk_text")
        .eq("document_id", str(document_id))
        .is_("embedding", "null")
        .order("chunk_index")
        .execute()
    )
    return response.data or []


def replace_chunks(document_id: UUID | str, rows: list[dict]) -> int:
    """
    Delete every chunk of the document, then insert *rows*.

    Returns:
        Number of chunks inserted

    Raises:
        StoreWriteFailed: If the delete or insert fails
    """
    supabase = get_supabase()

    try:
        supabase.table(TABLE).delete().eq("document_id", str(document_id)).execute()
        if rows:
            supabase.table(TABLE).insert(rows).execute()
    except Exception as e:
        logger.error(f"Failed to replace chunks for document {document_id}: {e}")
        raise StoreWriteFailed("Failed to store document chunks.") from e

    logger.debug(f"Stored {len(rows)} chunks for document {document_id}")
    return len(rows)


def set_chunk_embedding(chunk_id: UUID | str, embedding: list[float]) -> None:
    """
    Store the vector for one chunk.

    Raises:
        StoreWriteFailed: If the update fails
    """
    try:
        (
            get_supabase()
            .table(TABLE)
            .update({"embedding": embedding})
            .eq("id", str(chunk_id))
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to store embedding for chunk {chunk_id}: {e}")
        raise StoreWriteFailed("Failed to store chunk embedding.") from e
