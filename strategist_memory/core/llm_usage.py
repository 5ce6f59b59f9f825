"""Centralized AI usage logger for cost/quota tracking."""

from uuid import UUID

from strategist_memory.core.logging import get_logger
from strategist_memory.db.supabase_client import get_supabase

logger = get_logger(__name__)

USAGE_TABLE = "ai_usage_log"


def log_ai_usage(
    project_id: UUID | str,
    user_id: UUID | str,
    function_name: str,
    model: str,
    input_length: int,
    output_length: int,
) -> None:
    """Append one external-model call to the usage log. Fire-and-forget.

    Sizes are character counts, except embedding outputs which record the
    vector dimension.
    """
    row = {
        "project_id": str(project_id),
        "user_id": str(user_id),
        "function_name": function_name,
        "model": model,
        "input_length": input_length,
        "output_length": output_length,
    }

    try:
        get_supabase().table(USAGE_TABLE).insert(row).execute()
        logger.debug(
            f"AI usage logged: {function_name} model={model} "
            f"in={input_length} out={output_length}"
        )
    except Exception as e:
        # Never fail the main operation due to usage logging
        logger.error(f"Failed to log AI usage for {function_name}: {e}")
