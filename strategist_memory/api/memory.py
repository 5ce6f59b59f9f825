"""API endpoints for the document memory pipeline."""

from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException

from strategist_memory.chains.assistant_context import build_assistant_context
from strategist_memory.chains.memory_pipeline import MemoryPipeline
from strategist_memory.chains.retrieve_context import retrieve_context
from strategist_memory.chains.suggest_step import suggest_steps
from strategist_memory.core.auth import AuthContext, require_auth
from strategist_memory.core.auto_trigger import TriggerAction, controller
from strategist_memory.core.errors import (
    FeatureDisabled,
    MemoryPipelineError,
    NoApiKeyConfigured,
    StaleStatusEvent,
)
from strategist_memory.core.logging import get_logger
from strategist_memory.core.model_gateway import ModelGateway, open_gateway
from strategist_memory.core.schemas_memory import (
    AssistantContextRequest,
    AssistantContextResponse,
    ContextSearchRequest,
    ContextSearchResponse,
    DocumentRef,
    EmbedChunksResponse,
    MemoryPublishResponse,
    MemorySyncRequest,
    MessageResponse,
    ProfileRequest,
    ProfileResponse,
    StatusEventRequest,
    StatusEventResponse,
    StepEmbeddingResponse,
    SuggestStepRequest,
    SuggestStepResponse,
    SummarizeResponse,
)
from strategist_memory.db.documents import get_document
from strategist_memory.db.projects import get_owned_project

logger = get_logger(__name__)

router = APIRouter()


@contextmanager
def _pipeline_errors(operation: str) -> Iterator[None]:
    """Translate pipeline errors into HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except MemoryPipelineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    except Exception as e:
        logger.exception(f"Unexpected error in {operation}")
        raise HTTPException(status_code=500, detail=f"Failed to {operation}") from e


def _optional_gateway(project: dict) -> ModelGateway | None:
    """Gateway for stages that also work without AI (disconnect, profile digest)."""
    try:
        return open_gateway(project)
    except (FeatureDisabled, NoApiKeyConfigured) as e:
        logger.info(
            f"Continuing without model gateway for project {project['id']}: {e.message}",
            extra={"project_id": str(project["id"])},
        )
        return None


def _load(body: DocumentRef, auth: AuthContext) -> tuple[dict, dict]:
    project = get_owned_project(body.project_id, auth.user_id)
    document = get_document(body.document_id, body.project_id)
    return project, document


# =============================================================================
# Document stages
# =============================================================================


@router.post("/documents/summarize", response_model=SummarizeResponse)
def summarize_document(body: DocumentRef, auth: AuthContext = Depends(require_auth)):
    """Summarize a document, then chunk and embed it."""
    with _pipeline_errors("summarize document"):
        project, document = _load(body, auth)
        pipeline = MemoryPipeline(project, open_gateway(project))
        fields, run = pipeline.run_summarize_chain(document)

    return {
        "summary": fields["summary"],
        "key_decisions": fields["key_decisions"],
        "tags": fields["tags"],
        "last_summarized_at": fields.get("last_summarized_at"),
        "chain": run.to_dict(),
    }


@router.post("/documents/memory", response_model=MemoryPublishResponse | MessageResponse)
def sync_document_memory(body: MemorySyncRequest, auth: AuthContext = Depends(require_auth)):
    """Publish a document into project memory, or disconnect it."""
    with _pipeline_errors(f"{body.action} project memory"):
        project, document = _load(body, auth)

        if body.action == "disconnect":
            pipeline = MemoryPipeline(project, _optional_gateway(project))
            pipeline.run_disconnect_chain(document)
            return {"message": "Document disconnected from project memory."}

        pipeline = MemoryPipeline(project, open_gateway(project))
        fields, _run = pipeline.run_publish_chain(document)

    return {
        "summary": fields["summary"],
        "key_decisions": fields["key_decisions"],
        "tags": fields["tags"],
    }


@router.post("/documents/embed-chunks", response_model=EmbedChunksResponse)
def embed_document_chunks(body: DocumentRef, auth: AuthContext = Depends(require_auth)):
    """Embed every chunk of a document that has no vector yet."""
    with _pipeline_errors("embed document chunks"):
        project, document = _load(body, auth)
        processed = MemoryPipeline(project, open_gateway(project)).embed_chunks(document)

    return {"processedChunks": processed}


@router.post("/documents/step-embedding", response_model=StepEmbeddingResponse)
def generate_step_embedding(body: DocumentRef, auth: AuthContext = Depends(require_auth)):
    """Embed a document's summary and key decisions as its step memory."""
    with _pipeline_errors("generate step embedding"):
        project, document = _load(body, auth)
        dimensions = MemoryPipeline(project, open_gateway(project)).embed_step_memory(document)

    return {"document_id": str(document["id"]), "dimensions": dimensions}


@router.post("/documents/status-events", response_model=StatusEventResponse)
def handle_status_event(body: StatusEventRequest, auth: AuthContext = Depends(require_auth)):
    """Fire the pipeline entry stage for a qualifying status transition."""
    with _pipeline_errors("handle status event"):
        project, document = _load(body, auth)
        stored_status = (document.get("status") or "").strip().lower()
        if stored_status != body.status.strip().lower():
            raise StaleStatusEvent(
                f"Document status is '{document.get('status')}', event reported '{body.status}'."
            )

        def run(action: TriggerAction) -> None:
            if action is TriggerAction.SUMMARIZE:
                MemoryPipeline(project, open_gateway(project)).run_summarize_chain(document)
            elif action is TriggerAction.PUBLISH:
                MemoryPipeline(project, open_gateway(project)).run_publish_chain(document)
            elif action is TriggerAction.DISCONNECT:
                MemoryPipeline(project, _optional_gateway(project)).run_disconnect_chain(document)

        decision = controller.handle(
            str(body.document_id),
            body.status,
            run,
            previous_status=body.previous_status,
        )

    return {"outcome": decision.outcome.value, "action": decision.action.value}


# =============================================================================
# Retrieval
# =============================================================================


@router.post("/steps/suggest", response_model=SuggestStepResponse)
def suggest_document_step(body: SuggestStepRequest, auth: AuthContext = Depends(require_auth)):
    """Rank the project's steps against an uploaded document."""
    with _pipeline_errors("suggest step"):
        project = get_owned_project(body.project_id, auth.user_id)
        suggestions = suggest_steps(project["id"], body.document_text, open_gateway(project))

    return {"suggestions": suggestions}


@router.post("/memory/search", response_model=ContextSearchResponse)
def search_project_memory(body: ContextSearchRequest, auth: AuthContext = Depends(require_auth)):
    """Find published documents relevant to a query."""
    with _pipeline_errors("search project memory"):
        project = get_owned_project(body.project_id, auth.user_id)
        results = retrieve_context(
            project["id"], body.query_text, open_gateway(project), top_k=body.top_k
        )

    return {"results": results}


@router.post("/memory/assistant-context", response_model=AssistantContextResponse)
def get_assistant_context(body: AssistantContextRequest, auth: AuthContext = Depends(require_auth)):
    """Profile and relevant memories used to ground an assistant reply."""
    with _pipeline_errors("build assistant context"):
        project = get_owned_project(body.project_id, auth.user_id)
        return build_assistant_context(project, body.query_text, open_gateway(project))


@router.post("/projects/profile", response_model=ProfileResponse)
def recompute_project_profile(body: ProfileRequest, auth: AuthContext = Depends(require_auth)):
    """Regenerate the project's compressed profile."""
    with _pipeline_errors("recompute project profile"):
        project = get_owned_project(body.project_id, auth.user_id)
        profile = MemoryPipeline(project, _optional_gateway(project)).recompute_profile()

    return {"project_profile": profile}
