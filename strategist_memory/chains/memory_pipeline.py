"""Document memory pipeline.

Stages, each independently callable and safe to re-run:

    summarize → chunk → embed_chunks → embed_step_memory
    publish_memory | disconnect_memory → recompute_profile

Chain runners execute a first stage whose errors propagate to the caller,
then successor stages whose failures are logged and recorded on the
``PipelineRun`` without undoing anything already written.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from strategist_memory.chains.project_profile import recompute_profile
from strategist_memory.core.chunking import chunk_text
from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import normalize, truncate_to_chars
from strategist_memory.core.errors import (
    DocumentNotPublished,
    InvalidRequest,
    MemoryPipelineError,
    NoApiKeyConfigured,
)
from strategist_memory.core.logging import get_logger, log_with_context
from strategist_memory.core.model_gateway import ModelGateway
from strategist_memory.core.pipeline_states import PipelineRun, PipelineState
from strategist_memory.core.summary_contract import (
    DECISION_PLACEHOLDER,
    DOCUMENT_SUMMARY,
    MEMORY_SUMMARY,
    MIN_DECISIONS,
    build_fallback_tags,
)
from strategist_memory.db import document_chunks, documents, project_memory, step_embeddings
from strategist_memory.db.projects import get_step

logger = get_logger(__name__)

EMPTY_SUMMARY = "No content available to summarize yet."
PUBLISHED_STATUS = "published"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def placeholder_fields(step_name: str | None) -> dict[str, Any]:
    """Derived fields written when a document has no content."""
    return {
        "summary": EMPTY_SUMMARY,
        "key_decisions": [DECISION_PLACEHOLDER] * MIN_DECISIONS,
        "tags": build_fallback_tags(step_name),
    }


def build_step_memory_text(summary: str | None, key_decisions: list[str] | None) -> str:
    parts = [(summary or "").strip()]
    parts.extend(d.strip() for d in key_decisions or [] if isinstance(d, str) and d.strip())
    return "\n".join(p for p in parts if p)


def build_memory_text(summary: str, key_decisions: list[str]) -> str:
    """Text embedded for a project memory entry."""
    lines = [summary.strip()]
    if key_decisions:
        lines.append("Key Decisions:")
        lines.extend(f"- {d}" for d in key_decisions)
    return "\n".join(lines)


class MemoryPipeline:
    """Runs memory stages for documents of one project."""

    def __init__(
        self,
        project: dict,
        gateway: ModelGateway | None,
        settings: Settings | None = None,
    ):
        self.project = project
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._steps: dict[str, dict | None] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_gateway(self) -> ModelGateway:
        if self.gateway is None:
            raise NoApiKeyConfigured()
        return self.gateway

    def _step_for(self, document: dict) -> dict | None:
        step_id = document.get("step_id")
        if not step_id:
            return None
        key = str(step_id)
        if key not in self._steps:
            self._steps[key] = get_step(key)
        return self._steps[key]

    def _fallback_tags(self, document: dict) -> list[str]:
        step = self._step_for(document) or {}
        return build_fallback_tags(step.get("step_name"))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def summarize(self, document: dict) -> dict[str, Any]:
        """
        Recompute summary, key decisions and tags from current content.

        Empty content skips the model and writes placeholder fields.

        Returns:
            The derived fields written to the document
        """
        text = normalize(document.get("content"))

        if not text:
            step = self._step_for(document) or {}
            fields = placeholder_fields(step.get("step_name"))
        else:
            result = self._require_gateway().summarize(
                text,
                DOCUMENT_SUMMARY,
                fallback_tags=self._fallback_tags(document),
                title=document.get("document_name"),
                function_name="summarize-document",
            )
            fields = result.model_dump()

        fields["last_summarized_at"] = _now_iso()
        documents.update_document_fields(document["id"], fields)
        return fields

    def chunk(self, document: dict) -> int:
        """
        Replace the document's chunk set from its current content.

        Chunks whose index and text are unchanged keep their vector; every
        other chunk is stored with a null embedding.

        Returns:
            Number of chunks stored
        """
        text = normalize(document.get("content"))
        pieces = chunk_text(
            text,
            max_chars=self.settings.CHUNK_MAX_CHARS,
            overlap=self.settings.CHUNK_OVERLAP,
        )

        existing = {
            c["chunk_index"]: c for c in document_chunks.list_chunks(document["id"])
        }

        rows = []
        carried = 0
        for piece in pieces:
            previous = existing.get(piece["chunk_index"])
            embedding = None
            if previous and previous.get("chunk_text") == piece["content"]:
                embedding = previous.get("embedding")
                if embedding is not None:
                    carried += 1
            rows.append(
                {
                    "document_id": str(document["id"]),
                    "project_id": str(document["project_id"]),
                    "document_version": document.get("current_version"),
                    "chunk_index": piece["chunk_index"],
                    "chunk_text": piece["content"],
                    "embedding": embedding,
                }
            )

        stored = document_chunks.replace_chunks(document["id"], rows)
        logger.debug(
            f"Chunked document {document['id']}: {stored} chunks, {carried} embeddings kept",
            extra={"document_id": str(document["id"])},
        )
        return stored

    def embed_chunks(self, document: dict) -> int:
        """
        Embed chunks that have no vector yet, in chunk_index order.

        A failure stops the stage; vectors already stored are kept.

        Returns:
            Number of chunks embedded by this call
        """
        pending = document_chunks.list_unembedded_chunks(document["id"])
        if not pending:
            return 0

        gateway = self._require_gateway()
        processed = 0
        for chunk in sorted(pending, key=lambda c: c["chunk_index"]):
            vector = gateway.embed(chunk["chunk_text"], function_name="embed-document-chunks")
            document_chunks.set_chunk_embedding(chunk["id"], vector)
            processed += 1
        return processed

    def embed_step_memory(self, document: dict) -> int:
        """
        Embed summary + key decisions as the document's step memory vector.

        Returns:
            Vector dimension

        Raises:
            InvalidRequest: If the document has no summary or decisions
        """
        text = build_step_memory_text(document.get("summary"), document.get("key_decisions"))
        if not text:
            raise InvalidRequest("Summary or key decisions required to generate embedding.")

        vector = self._require_gateway().embed(
            truncate_to_chars(text, self.settings.EMBEDDING_CHAR_LIMIT),
            function_name="generate-step-embedding",
        )
        step_embeddings.upsert_step_embedding(document["id"], document["project_id"], vector)
        return len(vector)

    def publish_memory(self, document: dict) -> dict[str, Any]:
        """
        Write the document's project memory entry.

        Empty content removes any existing entry and writes placeholder
        fields instead.

        Returns:
            summary, key_decisions and tags written to the document

        Raises:
            DocumentNotPublished: If the document status is not published
        """
        if document.get("status") != PUBLISHED_STATUS:
            raise DocumentNotPublished()

        text = normalize(document.get("content"))
        step = self._step_for(document) or {}
        published_at = _now_iso()

        if not text:
            project_memory.delete_memory_entry(document["id"])
            fields = placeholder_fields(step.get("step_name"))
            documents.update_document_fields(
                document["id"],
                {**fields, "last_summarized_at": published_at, "last_published_at": published_at},
            )
            return fields

        gateway = self._require_gateway()
        result = gateway.summarize(
            text,
            MEMORY_SUMMARY,
            fallback_tags=build_fallback_tags(step.get("step_name")),
            title=document.get("document_name"),
            function_name="sync-project-memory",
        )
        vector = gateway.embed(
            truncate_to_chars(
                build_memory_text(result.summary, result.key_decisions),
                self.settings.EMBEDDING_CHAR_LIMIT,
            ),
            function_name="sync-project-memory",
        )

        project_memory.upsert_memory_entry(
            {
                "document_id": str(document["id"]),
                "project_id": str(document["project_id"]),
                "phase_id": step.get("phase_id"),
                "step_id": document.get("step_id"),
                "title": document.get("document_name") or step.get("step_name") or "Untitled document",
                "summary": result.summary,
                "key_decisions": result.key_decisions,
                "tags": result.tags,
                "embedding": vector,
                "updated_at": published_at,
            }
        )

        fields = result.model_dump()
        documents.update_document_fields(
            document["id"],
            {**fields, "last_summarized_at": published_at, "last_published_at": published_at},
        )
        return fields

    def disconnect_memory(self, document: dict) -> None:
        """Delete the memory entry and clear the document's derived fields."""
        project_memory.delete_memory_entry(document["id"])
        documents.update_document_fields(
            document["id"],
            {"summary": None, "key_decisions": [], "tags": [], "last_published_at": None},
        )

    def recompute_profile(self) -> str:
        return recompute_profile(self.project, self.gateway, self.settings)

    # ------------------------------------------------------------------
    # Chains
    # ------------------------------------------------------------------

    def _run_first(self, run: PipelineRun, stage: PipelineState, fn: Callable[[], Any]) -> Any:
        run.enter(stage)
        log_with_context(
            logger, logging.INFO, "Stage started",
            run_id=run.run_id, document_id=run.document_id, stage=stage.value,
        )
        try:
            result = fn()
        except MemoryPipelineError as e:
            run.fail(e)
            log_with_context(
                logger, logging.WARNING, f"Stage failed: {e.message}",
                run_id=run.run_id, document_id=run.document_id, stage=stage.value,
            )
            raise
        run.complete()
        log_with_context(
            logger, logging.INFO, "Stage finished",
            run_id=run.run_id, document_id=run.document_id, stage=stage.value,
        )
        return result

    def _run_chained(self, run: PipelineRun, stage: PipelineState, fn: Callable[[], Any]) -> bool:
        """Run a successor stage; failures are logged and stop the chain."""
        run.enter(stage)
        try:
            fn()
        except MemoryPipelineError as e:
            run.fail(e)
            log_with_context(
                logger, logging.ERROR, f"Chained stage failed: {e.message}",
                run_id=run.run_id, document_id=run.document_id, stage=stage.value,
            )
            return False
        except Exception as e:
            logger.exception(
                f"Unexpected error in chained stage {stage.value}",
                extra={"run_id": run.run_id, "document_id": run.document_id, "stage": stage.value},
            )
            run.fail(e)
            return False

        run.complete()
        log_with_context(
            logger, logging.INFO, "Stage finished",
            run_id=run.run_id, document_id=run.document_id, stage=stage.value,
        )
        return True

    def run_summarize_chain(self, document: dict) -> tuple[dict[str, Any], PipelineRun]:
        """Summarize, then chunk, embed chunks and embed step memory."""
        run = PipelineRun(document_id=str(document["id"]))
        fields = self._run_first(run, PipelineState.SUMMARIZING, lambda: self.summarize(document))
        current = {**document, **fields}

        successors: list[tuple[PipelineState, Callable[[], Any]]] = [
            (PipelineState.CHUNKING, lambda: self.chunk(current)),
        ]
        # Nothing further to embed for an empty document
        if normalize(document.get("content")):
            successors += [
                (PipelineState.EMBEDDING_CHUNKS, lambda: self.embed_chunks(current)),
                (PipelineState.EMBEDDING_STEP_MEMORY, lambda: self.embed_step_memory(current)),
            ]

        for stage, fn in successors:
            if not self._run_chained(run, stage, fn):
                break
        run.finish()
        return fields, run

    def run_publish_chain(self, document: dict) -> tuple[dict[str, Any], PipelineRun]:
        """Publish the memory entry, then recompute the project profile."""
        run = PipelineRun(document_id=str(document["id"]))
        fields = self._run_first(
            run, PipelineState.PUBLISHING_MEMORY, lambda: self.publish_memory(document)
        )
        self._run_chained(run, PipelineState.RECOMPUTING_PROFILE, self.recompute_profile)
        run.finish()
        return fields, run

    def run_disconnect_chain(self, document: dict) -> PipelineRun:
        """Remove the memory entry, then recompute the project profile."""
        run = PipelineRun(document_id=str(document["id"]))
        self._run_first(
            run, PipelineState.DISCONNECTING_MEMORY, lambda: self.disconnect_memory(document)
        )
        self._run_chained(run, PipelineState.RECOMPUTING_PROFILE, self.recompute_profile)
        run.finish()
        return run
