"""Tests for the OpenAI-backed model gateway with a mocked client."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APITimeoutError

from strategist_memory.core.errors import (
    EmbeddingFailed,
    FeatureDisabled,
    InvalidRequest,
    MalformedModelResponse,
)
from strategist_memory.core.model_gateway import (
    ModelGateway,
    UsageContext,
    build_summary_system_prompt,
    open_gateway,
)
from strategist_memory.core.summary_contract import DOCUMENT_SUMMARY, MEMORY_SUMMARY
from tests.fixtures_memory import PROJECT, USER_ID

USAGE = UsageContext(project_id="p-1", user_id="u-1")


def _chat_response(content: str | None) -> MagicMock:
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def _embedding_response(dimension: int) -> MagicMock:
    item = MagicMock()
    item.embedding = [0.1] * dimension
    response = MagicMock()
    response.data = [item]
    return response


def _timeout() -> APITimeoutError:
    return APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def gw(client, settings):
    with patch("strategist_memory.core.model_gateway.log_ai_usage") as mock_log:
        gateway = ModelGateway(api_key="sk-test", usage=USAGE, settings=settings, client=client)
        gateway.mock_log = mock_log
        yield gateway


class TestSummarize:
    def test_returns_validated_result_and_logs_usage(self, gw, client):
        client.chat.completions.create.return_value = _chat_response(
            json.dumps({"summary": "Targets SMBs.", "key_decisions": ["Price at $49/mo"], "tags": ["pricing"]})
        )

        result = gw.summarize("We target small businesses.", DOCUMENT_SUMMARY, ["brand", "strategy"])

        assert result.summary == "Targets SMBs."
        assert len(result.key_decisions) == 3
        assert result.tags == ["pricing", "brand"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == gw.settings.SUMMARY_MODEL
        gw.mock_log.assert_called_once()
        assert gw.mock_log.call_args.kwargs["function_name"] == "summarize-document"

    def test_truncates_input_to_budget(self, gw, client):
        client.chat.completions.create.return_value = _chat_response(
            json.dumps({"summary": "S.", "key_decisions": ["a", "b", "c"]})
        )
        gw.summarize("x" * 10000, DOCUMENT_SUMMARY, [])

        user_prompt = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert len(user_prompt) < 10000
        assert "..." in user_prompt

    def test_empty_text_is_rejected_without_a_call(self, gw, client):
        with pytest.raises(InvalidRequest):
            gw.summarize("   ", DOCUMENT_SUMMARY, [])
        client.chat.completions.create.assert_not_called()

    def test_malformed_json_raises(self, gw, client):
        client.chat.completions.create.return_value = _chat_response("not json at all")
        with pytest.raises(MalformedModelResponse):
            gw.summarize("text", DOCUMENT_SUMMARY, [])

    def test_timeout_maps_to_malformed_response(self, gw, client):
        client.chat.completions.create.side_effect = _timeout()
        with pytest.raises(MalformedModelResponse):
            gw.summarize("text", DOCUMENT_SUMMARY, [])
        gw.mock_log.assert_not_called()


class TestEmbed:
    def test_returns_vector_and_logs_dimension(self, gw, client, settings):
        client.embeddings.create.return_value = _embedding_response(settings.EMBEDDING_DIM)

        vector = gw.embed("hello")

        assert len(vector) == settings.EMBEDDING_DIM
        assert gw.mock_log.call_args.kwargs["output_length"] == settings.EMBEDDING_DIM

    def test_dimension_mismatch_raises(self, gw, client, settings):
        client.embeddings.create.return_value = _embedding_response(settings.EMBEDDING_DIM + 1)
        with pytest.raises(EmbeddingFailed, match="dimension mismatch"):
            gw.embed("hello")

    def test_missing_vector_raises(self, gw, client):
        response = MagicMock()
        response.data = []
        client.embeddings.create.return_value = response
        with pytest.raises(EmbeddingFailed):
            gw.embed("hello")

    def test_provider_error_raises(self, gw, client):
        client.embeddings.create.side_effect = _timeout()
        with pytest.raises(EmbeddingFailed):
            gw.embed("hello")

    def test_empty_text_is_rejected(self, gw, client):
        with pytest.raises(InvalidRequest):
            gw.embed("")
        client.embeddings.create.assert_not_called()


class TestCompleteText:
    def test_returns_trimmed_text(self, gw, client):
        client.chat.completions.create.return_value = _chat_response("  line one\nline two  ")
        assert gw.complete_text("sys", "user", "project-profile") == "line one\nline two"

    def test_empty_completion_raises(self, gw, client):
        client.chat.completions.create.return_value = _chat_response("")
        with pytest.raises(MalformedModelResponse):
            gw.complete_text("sys", "user", "project-profile")


def test_system_prompt_reflects_constraints():
    document_prompt = build_summary_system_prompt(DOCUMENT_SUMMARY)
    memory_prompt = build_summary_system_prompt(MEMORY_SUMMARY)

    assert "2-3 sentences" in document_prompt
    assert "between 3 and 5" in document_prompt
    assert "between 3 and 7" in memory_prompt
    assert '"tags"' in memory_prompt


def test_open_gateway_uses_user_key(fake_supabase, settings):
    fake_supabase.seed("user_settings", {"user_id": USER_ID, "openai_api_key": "sk-user", "ai_enabled": True})

    with patch("strategist_memory.core.model_gateway.OpenAI") as mock_openai:
        gateway = open_gateway(PROJECT, settings)

    assert mock_openai.call_args.kwargs["api_key"] == "sk-user"
    assert mock_openai.call_args.kwargs["timeout"] == settings.LLM_TIMEOUT_SECONDS
    assert gateway.usage.user_id == USER_ID


def test_open_gateway_refuses_disabled_account(fake_supabase, settings):
    fake_supabase.seed("user_settings", {"user_id": USER_ID, "openai_api_key": "sk-user", "ai_enabled": False})

    with patch("strategist_memory.core.model_gateway.OpenAI") as mock_openai:
        with pytest.raises(FeatureDisabled):
            open_gateway(PROJECT, settings)
    mock_openai.assert_not_called()


def test_usage_log_failure_never_raises(fake_supabase):
    from strategist_memory.core.llm_usage import log_ai_usage

    fake_supabase.fail_on.add(("ai_usage_log", "insert"))
    log_ai_usage("p", "u", "summarize-document", "gpt-4o-mini", 10, 20)

    fake_supabase.fail_on.clear()
    log_ai_usage("p", "u", "summarize-document", "gpt-4o-mini", 10, 20)
    assert fake_supabase.rows("ai_usage_log")[0]["output_length"] == 20
