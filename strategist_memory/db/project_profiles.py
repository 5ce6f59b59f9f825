"""Database operations for the per-project compressed profile."""

from datetime import datetime, timezone
from uuid import UUID

from strategist_memory.core.errors import StoreWriteFailed
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

TABLE = "project_profiles"


def get_profile_text(project_id: UUID | str) -> str | None:
    response = (
        get_supabase()
        .table(TABLE)
        .select("compressed_text")
        .eq("project_id", str(project_id))
        .maybe_single()
        .execute()
    )
    if response is None or not response.data:
        return None
    return response.data.get("compressed_text")


def upsert_profile(project_id: UUID | str, compressed_text: str) -> None:
    """
    Overwrite the project's profile row.

    Raises:
        StoreWriteFailed: If the upsert fails
    """
    row = {
        "project_id": str(project_id),
        "compressed_text": compressed_text,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        get_supabase().table(TABLE).upsert(row, on_conflict="project_id").execute()
    except Exception as e:
        logger.error(f"Failed to upsert profile for project {project_id}: {e}")
        raise StoreWriteFailed("Failed to store project profile.") from e
