"""Database operations for projects, steps and per-user AI settings."""

from uuid import UUID

from strategist_memory.core.api_keys import UserAISettings
from strategist_memory.core.errors import NotFound
from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)


def get_project(project_id: UUID | str) -> dict | None:
    """Get a project row by id, or None."""
    response = (
        get_supabase()
        .table("projects")
        .select("*")
        .eq("id", str(project_id))
        .maybe_single()
        .execute()
    )
    # maybe_single() may return None instead of an empty response
    if response is None:
        return None
    return response.data


def get_owned_project(project_id: UUID | str, user_id: UUID | str) -> dict:
    """
    Get a project the caller owns.

    Raises:
        NotFound: If the project is missing or owned by someone else
    """
    project = get_project(project_id)
    if not project or str(project.get("user_id")) != str(user_id):
        raise NotFound("Project not found.")
    return project


def get_step(step_id: UUID | str) -> dict | None:
    """Get a step row by id, or None."""
    response = (
        get_supabase()
        .table("steps")
        .select("id, project_id, phase_id, step_name, description")
        .eq("id", str(step_id))
        .maybe_single()
        .execute()
    )
    if response is None:
        return None
    return response.data


def list_steps(project_id: UUID | str) -> list[dict]:
    """List every step of a project."""
    response = (
        get_supabase()
        .table("steps")
        .select("id, phase_id, step_name, description")
        .eq("project_id", str(project_id))
        .execute()
    )
    return response.data or []


def get_user_ai_settings(user_id: UUID | str) -> UserAISettings:
    """Load a user's AI preferences; a missing row means defaults."""
    response = (
        get_supabase()
        .table("user_settings")
        .select("openai_api_key, ai_enabled")
        .eq("user_id", str(user_id))
        .maybe_single()
        .execute()
    )
    row = response.data if response is not None else None
    return UserAISettings.from_row(row)
