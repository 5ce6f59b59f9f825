"""Suggest which step an uploaded document belongs to."""

from uuid import UUID

from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import truncate_to_chars
from strategist_memory.core.errors import InvalidRequest
from strategist_memory.core.logging import get_logger
from strategist_memory.core.model_gateway import ModelGateway
from strategist_memory.core.similarity import search
from strategist_memory.db.projects import list_steps

logger = get_logger(__name__)


def step_text(step: dict) -> str:
    """``"{step_name}. {description}"``, or just the name."""
    name = (step.get("step_name") or "").strip()
    description = (step.get("description") or "").strip()
    if name and description:
        return f"{name}. {description}"
    return name or description


def suggest_steps(
    project_id: UUID | str,
    document_text: str,
    gateway: ModelGateway,
    settings: Settings | None = None,
) -> list[dict]:
    """
    Rank the project's steps by similarity to an uploaded document.

    Args:
        project_id: Project whose steps are candidates
        document_text: Raw text of the uploaded document
        gateway: Model gateway used for embeddings
        settings: Settings override

    Returns:
        Up to SUGGESTION_TOP_K dicts (step_id, step_name, description, score),
        best first

    Raises:
        InvalidRequest: If document_text is blank
        EmbeddingFailed: If any embedding call fails
    """
    settings = settings or get_settings()
    text = (document_text or "").strip()
    if not text:
        raise InvalidRequest("document_text is required.")

    steps = [s for s in list_steps(project_id) if step_text(s)]
    if not steps:
        return []

    document_vector = gateway.embed(
        truncate_to_chars(text, settings.EMBEDDING_CHAR_LIMIT),
        function_name="suggest-step (document)",
    )

    candidates = [
        (step, gateway.embed(step_text(step), function_name="suggest-step (step)"))
        for step in steps
    ]

    ranked = search(
        document_vector,
        candidates,
        top_k=settings.SUGGESTION_TOP_K,
        vector_of=lambda candidate: candidate[1],
    )

    logger.info(
        f"Ranked {len(steps)} steps for project {project_id}",
        extra={"project_id": str(project_id)},
    )

    return [
        {
            "step_id": scored.item[0]["id"],
            "step_name": scored.item[0].get("step_name"),
            "description": scored.item[0].get("description"),
            "score": scored.score,
        }
        for scored in ranked
    ]
