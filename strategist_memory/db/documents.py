"""Database operations for documents and their derived memory fields."""

from typing import Any
from uuid import UUID

from strategist_memory.core.errors import NotFound, StoreWriteFailed
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

DOCUMENT_COLUMNS = (
    "id, project_id, step_id, document_name, content, status, current_version, "
    "summary, key_decisions, tags, last_summarized_at, last_published_at"
)


def get_document(document_id: UUID | str, project_id: UUID | str) -> dict:
    """
    Get a document scoped to its project.

    Raises:
        NotFound: If no document with this id belongs to the project
    """
    response = (
        get_supabase()
        .table("documents")
        .select(DOCUMENT_COLUMNS)
        .eq("id", str(document_id))
        .eq("project_id", str(project_id))
        .maybe_single()
        .execute()
    )
    if response is None or not response.data:
        raise NotFound("Document not found.")
    return response.data


def update_document_fields(document_id: UUID | str, fields: dict[str, Any]) -> dict:
    """
    Overwrite derived fields on a document.

    Raises:
        StoreWriteFailed: If the update fails
    """
    try:
        response = (
            get_supabase()
            .table("documents")
            .update(fields)
            .eq("id", str(document_id))
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to update document {document_id}: {e}")
        raise StoreWriteFailed("Failed to update document.") from e

    return response.data[0] if response.data else {}
