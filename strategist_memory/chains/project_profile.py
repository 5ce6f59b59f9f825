"""Project profile compaction.

Folds a project's static attributes and its most recent memory entries into
one bounded digest. The digest is deterministic; when a model gateway is
available a short narrative is appended under ``PROFILE NARRATIVE:``.
"""

from typing import Any

from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import truncate_to_chars
from strategist_memory.core.errors import MalformedModelResponse
from strategist_memory.core.logging import get_logger
from strategist_memory.core.model_gateway import ModelGateway
from strategist_memory.db.project_memory import list_recent_entries
from strategist_memory.db.project_profiles import upsert_profile

logger = get_logger(__name__)

ENTRY_SUMMARY_CHARS = 220
ENTRY_KEY_DECISIONS = 2
NO_ENTRIES_LINE = "- No published steps yet."

NARRATIVE_HEADER = "PROFILE NARRATIVE:"
NARRATIVE_SYSTEM_PROMPT = (
    "You compress a brand strategy project into a working profile for an AI "
    "strategist. Using only the facts provided, write 4-6 short lines covering "
    "who the brand serves, how it is positioned, and the most recent decisions. "
    "No headings, no bullet symbols, no invented facts."
)


def _value(project: dict, key: str, fallback: str) -> str:
    value = project.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


def format_entry_line(entry: dict[str, Any]) -> str:
    """``- {title}: {summary} | Key: {d1}; {d2}``"""
    title = (entry.get("title") or "").strip() or "Untitled document"
    summary = truncate_to_chars((entry.get("summary") or "").strip(), ENTRY_SUMMARY_CHARS)

    decisions = [
        d.strip().rstrip(".")
        for d in (entry.get("key_decisions") or [])[:ENTRY_KEY_DECISIONS]
        if isinstance(d, str) and d.strip()
    ]
    line = f"- {title}: {summary}"
    if decisions:
        line = f"{line} | Key: {'; '.join(decisions)}"
    return line


def build_profile_digest(project: dict, entries: list[dict]) -> str:
    """Deterministic profile text from project attributes and memory entries."""
    lines = [
        "PROJECT SUMMARY:",
        f"- Brand: {_value(project, 'name', 'Untitled Project')}",
        f"- One-line: {_value(project, 'one_liner', 'To be defined.')}",
        f"- Audience: {_value(project, 'audience', 'Not specified.')}",
        f"- Positioning: {_value(project, 'positioning', 'Not specified.')}",
        f"- Constraints: {_value(project, 'constraints', 'None recorded.')}",
        "",
        "RECENT DECISIONS:",
    ]
    if entries:
        lines.extend(format_entry_line(entry) for entry in entries)
    else:
        lines.append(NO_ENTRIES_LINE)
    return "\n".join(lines)


def recompute_profile(
    project: dict,
    gateway: ModelGateway | None = None,
    settings: Settings | None = None,
) -> str:
    """
    Regenerate and overwrite the project's profile.

    Args:
        project: Project row (id plus static attributes)
        gateway: Optional gateway used for the narrative section
        settings: Settings override

    Returns:
        The stored profile text

    Raises:
        StoreWriteFailed: If the profile row cannot be written
    """
    settings = settings or get_settings()
    entries = list_recent_entries(project["id"], settings.PROFILE_MEMORY_LIMIT)
    profile = build_profile_digest(project, entries)

    if gateway is not None:
        try:
            narrative = gateway.complete_text(
                system_prompt=NARRATIVE_SYSTEM_PROMPT,
                user_prompt=profile,
                function_name="project-profile",
                max_tokens=300,
            )
            profile = f"{profile}\n\n{NARRATIVE_HEADER}\n{narrative}"
        except MalformedModelResponse as e:
            # The digest alone is a complete profile
            logger.warning(
                f"Profile narrative unavailable for project {project['id']}: {e.message}",
                extra={"project_id": str(project["id"])},
            )

    upsert_profile(project["id"], profile)
    logger.info(
        f"Recomputed profile for project {project['id']} from {len(entries)} entries",
        extra={"project_id": str(project["id"])},
    )
    return profile
