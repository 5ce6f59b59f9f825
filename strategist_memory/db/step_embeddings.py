"""Database operations for step memory embeddings (one vector per document)."""

from datetime import datetime, timezone
from uuid import UUID

from strategist_memory.core.errors import StoreWriteFailed
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "step_embeddings"


def upsert_step_embedding(
    document_id: UUID | str,
    project_id: UUID | str,
    embedding: list[float],
) -> None:
    """
    Replace the step memory vector for a document.

    Raises:
        StoreWriteFailed: If the upsert fails
    """
    row = {
        "step_document_id": str(document_id),
        "project_id": str(project_id),
        "embedding": embedding,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }

    try:
        get_supabase().table(TABLE).upsert(row, on_conflict="step_document_id").execute()
    except Exception as e:
        logger.error(f"Failed to upsert step embedding for document {document_id}: {e}")
        raise StoreWriteFailed("Failed to store step embedding.") from e
