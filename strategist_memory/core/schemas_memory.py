"""Pydantic schemas for memory pipeline endpoints."""

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class DocumentRef(BaseModel):
    """Request body addressing one document of a project."""
    document_id: UUID
    project_id: UUID


class SummarizeResponse(BaseModel):
    summary: str
    key_decisions: list[str]
    tags: list[str]
    last_summarized_at: str | None = None
    chain: dict[str, Any]


class MemorySyncRequest(DocumentRef):
    action: Literal["publish", "disconnect"]


class MemoryPublishResponse(BaseModel):
    summary: str
    key_decisions: list[str]
    tags: list[str]


class MessageResponse(BaseModel):
    message: str


class EmbedChunksResponse(BaseModel):
    processedChunks: int


class StepEmbeddingResponse(BaseModel):
    document_id: str
    dimensions: int


class StatusEventRequest(DocumentRef):
    """A document status change reported by the authoring surface."""
    status: str = Field(..., min_length=1)
    previous_status: str | None = None


class StatusEventResponse(BaseModel):
    outcome: Literal["fired", "ignored", "dropped_in_flight"]
    action: Literal["none", "summarize", "publish", "disconnect"]


class SuggestStepRequest(BaseModel):
    project_id: UUID
    document_text: str


class StepSuggestion(BaseModel):
    step_id: str
    step_name: str | None = None
    description: str | None = None
    score: float


class SuggestStepResponse(BaseModel):
    suggestions: list[StepSuggestion]


class ContextSearchRequest(BaseModel):
    project_id: UUID
    query_text: str
    top_k: int | None = Field(default=None, ge=1, le=20)


class ContextResult(BaseModel):
    document_id: str
    title: str | None = None
    summary: str
    key_decisions: list[str] = []
    tags: list[str] = []
    chunk_preview: str
    relevance_score: float


class ContextSearchResponse(BaseModel):
    results: list[ContextResult]


class AssistantContextRequest(BaseModel):
    project_id: UUID
    query_text: str


class ContextSource(BaseModel):
    document_id: str
    title: str | None = None
    chunk_preview: str
    relevance_score: float


class AssistantContextResponse(BaseModel):
    project_profile: str
    memories: str
    sources: list[ContextSource]


class ProfileRequest(BaseModel):
    project_id: UUID


class ProfileResponse(BaseModel):
    project_profile: str
