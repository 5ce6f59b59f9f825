"""Behavioral tests for the memory pipeline stages and chains."""

import pytest

from strategist_memory.chains.memory_pipeline import EMPTY_SUMMARY, MemoryPipeline
from strategist_memory.core.errors import (
    DocumentNotPublished,
    EmbeddingFailed,
    InvalidRequest,
    MalformedModelResponse,
    NoApiKeyConfigured,
    StoreWriteFailed,
)
from strategist_memory.core.pipeline_states import PipelineState
from strategist_memory.core.summary_contract import DECISION_PLACEHOLDER
from tests.fakes.fake_gateway import FakeGateway
from tests.fixtures_memory import DOCUMENT_ID, PROJECT, PROJECT_ID, STEP_ID, seed_project

LONG_CONTENT = "<p>" + " ".join(f"Sentence number {i} about pricing." for i in range(120)) + "</p>"


@pytest.fixture
def pipeline(fake_supabase, gateway, settings):
    return MemoryPipeline(PROJECT, gateway, settings.model_copy(update={"CHUNK_MAX_CHARS": 300, "CHUNK_OVERLAP": 30}))


def _document(fake):
    return next(d for d in fake.rows("documents") if d["id"] == DOCUMENT_ID)


def _chunks(fake):
    return sorted(
        (c for c in fake.rows("document_chunks") if c["document_id"] == DOCUMENT_ID),
        key=lambda c: c["chunk_index"],
    )


# =============================================================================
# Summarize
# =============================================================================


class TestSummarize:
    def test_overwrites_derived_fields(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, summary="stale", tags=["old"])

        fields = pipeline.summarize(document)

        stored = _document(fake_supabase)
        assert stored["summary"] == fields["summary"]
        assert "<" not in stored["summary"]
        assert stored["tags"] == ["pricing", "strategy"]
        assert stored["last_summarized_at"] is not None
        assert len(gateway.summarize_calls) == 1

    def test_empty_content_writes_placeholder_without_model_call(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, content="<p>  </p>")

        fields = pipeline.summarize(document)

        assert fields["summary"] == EMPTY_SUMMARY
        assert fields["key_decisions"] == [DECISION_PLACEHOLDER] * 3
        assert gateway.summarize_calls == []

    def test_requires_gateway_for_real_content(self, fake_supabase, settings):
        document = seed_project(fake_supabase)
        with pytest.raises(NoApiKeyConfigured):
            MemoryPipeline(PROJECT, None, settings).summarize(document)


# =============================================================================
# Chunk and embed
# =============================================================================


class TestChunking:
    def test_rechunk_replaces_full_set(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        pipeline.chunk(document)
        first_count = len(_chunks(fake_supabase))
        assert first_count > 2

        changed = {**document, "content": "<p>Completely new and much shorter text.</p>", "current_version": 3}
        pipeline.chunk(changed)

        chunks = _chunks(fake_supabase)
        assert [c["chunk_index"] for c in chunks] == [0]
        assert chunks[0]["chunk_text"] == "Completely new and much shorter text."
        assert chunks[0]["document_version"] == 3
        assert chunks[0]["embedding"] is None

    def test_unchanged_chunks_keep_their_vectors(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        pipeline.chunk(document)
        pipeline.embed_chunks(document)
        before = {c["chunk_index"]: c["embedding"] for c in _chunks(fake_supabase)}

        pipeline.chunk(document)

        after = {c["chunk_index"]: c["embedding"] for c in _chunks(fake_supabase)}
        assert after == before
        assert pipeline.embed_chunks(document) == 0

    def test_embed_chunks_is_idempotent(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        pipeline.chunk(document)

        processed = pipeline.embed_chunks(document)
        calls_after_first = len(gateway.embed_calls)
        vectors = [c["embedding"] for c in _chunks(fake_supabase)]

        assert processed == len(vectors)
        assert pipeline.embed_chunks(document) == 0
        assert len(gateway.embed_calls) == calls_after_first
        assert [c["embedding"] for c in _chunks(fake_supabase)] == vectors

    def test_partial_failure_keeps_progress(self, fake_supabase, settings):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        small = settings.model_copy(update={"CHUNK_MAX_CHARS": 300, "CHUNK_OVERLAP": 30})
        failing = MemoryPipeline(PROJECT, FakeGateway(fail_embed_after=2), small)
        failing.chunk(document)
        total = len(_chunks(fake_supabase))

        with pytest.raises(EmbeddingFailed):
            failing.embed_chunks(document)

        embedded = [c for c in _chunks(fake_supabase) if c["embedding"] is not None]
        assert [c["chunk_index"] for c in embedded] == [0, 1]

        retry_gateway = FakeGateway()
        assert MemoryPipeline(PROJECT, retry_gateway, small).embed_chunks(document) == total - 2
        assert len(retry_gateway.embed_calls) == total - 2

    def test_store_failure_aborts_stage(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        fake_supabase.fail_on.add(("document_chunks", "insert"))
        with pytest.raises(StoreWriteFailed):
            pipeline.chunk(document)


class TestStepMemory:
    def test_upserts_one_vector_per_document(self, fake_supabase, pipeline, settings):
        document = seed_project(fake_supabase, summary="S.", key_decisions=["a", "b", "c"])

        assert pipeline.embed_step_memory(document) == settings.EMBEDDING_DIM
        pipeline.embed_step_memory({**document, "summary": "Changed."})

        rows = fake_supabase.rows("step_embeddings")
        assert len(rows) == 1
        assert rows[0]["step_document_id"] == DOCUMENT_ID
        assert rows[0]["project_id"] == PROJECT_ID

    def test_embeds_summary_and_decisions(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, summary="Summary.", key_decisions=["One", "Two"])
        pipeline.embed_step_memory(document)
        assert gateway.embed_calls[-1] == "Summary.\nOne\nTwo"

    def test_nothing_to_embed_is_invalid(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, summary=None, key_decisions=[])
        with pytest.raises(InvalidRequest):
            pipeline.embed_step_memory(document)


# =============================================================================
# Publish / disconnect
# =============================================================================


class TestPublish:
    def test_requires_published_status(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, status="approved")
        with pytest.raises(DocumentNotPublished):
            pipeline.publish_memory(document)
        assert fake_supabase.rows("project_document_embeddings") == []

    def test_upserts_memory_entry_keyed_by_document(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, status="published")

        pipeline.publish_memory(document)
        pipeline.publish_memory(document)

        entries = fake_supabase.rows("project_document_embeddings")
        assert len(entries) == 1
        entry = entries[0]
        assert entry["document_id"] == DOCUMENT_ID
        assert entry["step_id"] == STEP_ID
        assert entry["title"] == "Pricing Brief"
        assert len(entry["key_decisions"]) >= 3
        assert entry["embedding"]
        assert _document(fake_supabase)["last_published_at"] is not None

    def test_empty_content_removes_existing_entry(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, status="published")
        pipeline.publish_memory(document)

        fields = pipeline.publish_memory({**document, "content": ""})

        assert fake_supabase.rows("project_document_embeddings") == []
        assert fields["summary"] == EMPTY_SUMMARY
        assert _document(fake_supabase)["key_decisions"] == [DECISION_PLACEHOLDER] * 3

    def test_model_failure_writes_nothing(self, fake_supabase, settings):
        document = seed_project(fake_supabase, status="published")
        with pytest.raises(MalformedModelResponse):
            MemoryPipeline(PROJECT, FakeGateway(fail_summarize=True), settings).publish_memory(document)
        assert fake_supabase.rows("project_document_embeddings") == []
        assert _document(fake_supabase)["summary"] is None


class TestDisconnect:
    def test_removes_entry_and_clears_fields(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, status="published")
        pipeline.publish_memory(document)

        pipeline.disconnect_memory(document)

        assert fake_supabase.rows("project_document_embeddings") == []
        stored = _document(fake_supabase)
        assert stored["summary"] is None
        assert stored["key_decisions"] == []
        assert stored["tags"] == []
        assert stored["last_published_at"] is None

    def test_is_idempotent(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase)

        pipeline.disconnect_memory(document)
        once = _document(fake_supabase).copy()
        pipeline.disconnect_memory(document)

        assert fake_supabase.rows("project_document_embeddings") == []
        assert _document(fake_supabase) == once

    def test_works_without_gateway(self, fake_supabase, settings):
        document = seed_project(fake_supabase)
        run = MemoryPipeline(PROJECT, None, settings).run_disconnect_chain(document)
        assert run.succeeded
        profile = fake_supabase.rows("project_profiles")[0]["compressed_text"]
        assert profile.startswith("PROJECT SUMMARY:")
        assert "PROFILE NARRATIVE:" not in profile


# =============================================================================
# Chains
# =============================================================================


class TestChains:
    def test_summarize_chain_runs_all_stages(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, content=LONG_CONTENT)

        fields, run = pipeline.run_summarize_chain(document)

        assert run.succeeded
        assert run.completed == [
            PipelineState.SUMMARIZING,
            PipelineState.CHUNKING,
            PipelineState.EMBEDDING_CHUNKS,
            PipelineState.EMBEDDING_STEP_MEMORY,
        ]
        assert all(c["embedding"] is not None for c in _chunks(fake_supabase))
        assert len(fake_supabase.rows("step_embeddings")) == 1
        assert run.state is PipelineState.IDLE

    def test_chained_failure_keeps_earlier_writes(self, fake_supabase, settings):
        document = seed_project(fake_supabase, content=LONG_CONTENT)
        small = settings.model_copy(update={"CHUNK_MAX_CHARS": 300, "CHUNK_OVERLAP": 30})
        pipeline = MemoryPipeline(PROJECT, FakeGateway(fail_embed_after=1), small)

        fields, run = pipeline.run_summarize_chain(document)

        assert run.failed_stage is PipelineState.EMBEDDING_CHUNKS
        assert run.completed == [PipelineState.SUMMARIZING, PipelineState.CHUNKING]
        assert _document(fake_supabase)["summary"] == fields["summary"]
        assert len(_chunks(fake_supabase)) > 1
        assert fake_supabase.rows("step_embeddings") == []

    def test_first_stage_failure_propagates(self, fake_supabase, settings):
        document = seed_project(fake_supabase)
        pipeline = MemoryPipeline(PROJECT, FakeGateway(fail_summarize=True), settings)

        with pytest.raises(MalformedModelResponse):
            pipeline.run_summarize_chain(document)
        assert fake_supabase.rows("document_chunks") == []

    def test_empty_document_chain_stops_after_chunking(self, fake_supabase, pipeline, gateway):
        document = seed_project(fake_supabase, content="")

        fields, run = pipeline.run_summarize_chain(document)

        assert run.completed == [PipelineState.SUMMARIZING, PipelineState.CHUNKING]
        assert gateway.embed_calls == []

    def test_profile_failure_after_publish_is_isolated(self, fake_supabase, pipeline):
        document = seed_project(fake_supabase, status="published")
        fake_supabase.fail_on.add(("project_profiles", "upsert"))

        fields, run = pipeline.run_publish_chain(document)

        assert run.failed_stage is PipelineState.RECOMPUTING_PROFILE
        assert len(fake_supabase.rows("project_document_embeddings")) == 1
        assert fields["summary"]


def test_end_to_end_publish_scenario(fake_supabase, pipeline):
    """Publishing a two-sentence brief yields memory, vector and profile line."""
    document = seed_project(fake_supabase, status="published")

    fields, run = pipeline.run_publish_chain(document)

    assert run.succeeded
    summary = _document(fake_supabase)["summary"]
    assert summary and summary != EMPTY_SUMMARY
    assert "<" not in summary and ">" not in summary
    assert "small businesses" in summary
    assert len(_document(fake_supabase)["key_decisions"]) >= 3

    entries = fake_supabase.rows("project_document_embeddings")
    assert [e["document_id"] for e in entries] == [DOCUMENT_ID]
    assert entries[0]["embedding"]

    profile = fake_supabase.rows("project_profiles")[0]["compressed_text"]
    recent = profile.split("RECENT DECISIONS:")[1]
    assert any(line.startswith("- Pricing Brief: ") and summary in line for line in recent.splitlines())
