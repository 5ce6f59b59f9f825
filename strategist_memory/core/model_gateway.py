"""Language-model gateway.

Single client for the two external capabilities the memory pipeline needs:
structured summarization and text embedding (plus free-text completion for
the project profile narrative). Owns key resolution, input budgeting,
response validation and usage accounting. Provider errors and timeouts are
mapped onto the pipeline error taxonomy here and nowhere else.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from openai import OpenAI, OpenAIError

from strategist_memory.core.api_keys import UserAISettings, resolve_api_key
from strategist_memory.core.config import Settings, get_settings
from strategist_memory.core.content_normalizer import truncate_to_chars
from strategist_memory.core.errors import EmbeddingFailed, InvalidRequest, MalformedModelResponse
from strategist_memory.core.llm_usage import log_ai_usage
from strategist_memory.core.logging import get_logger
from strategist_memory.core.summary_contract import (
    SummaryConstraints,
    SummaryResult,
    decode_summary,
)

logger = get_logger(__name__)

SUMMARY_TEMPERATURE = 0.2


@dataclass(frozen=True)
class UsageContext:
    """Who a model call is billed to."""

    project_id: UUID | str
    user_id: UUID | str


def build_summary_system_prompt(constraints: SummaryConstraints) -> str:
    """Render the structured-output instructions for a call site."""
    if constraints.min_sentences == constraints.max_sentences:
        sentences = f"exactly {constraints.min_sentences}"
    else:
        sentences = f"{constraints.min_sentences}-{constraints.max_sentences}"

    rules = [
        "You summarize brand strategy documents for StrategistAI.",
        "Rules:",
        f"- Summary: {sentences} sentences, no more than ~{constraints.max_summary_tokens} tokens total.",
        f"- Key decisions: between 3 and {constraints.max_decisions} items, each under 15 words.",
        "- Decisions must be concise, action-oriented, and taken from the document.",
    ]
    if constraints.include_tags:
        rules.append("- Tags: 2-5 lowercase tags, max 2 words each, hyphen-separated.")
        keys = '{"summary": string, "key_decisions": string[], "tags": string[]}'
    else:
        keys = '{"summary": string, "key_decisions": string[]}'
    rules.extend(
        [
            "- Only reflect information present in the document.",
            f"- Respond with strict JSON: {keys}.",
        ]
    )
    return "\n".join(rules)


class ModelGateway:
    """OpenAI-backed summarization, embedding and completion for one caller."""

    def __init__(
        self,
        api_key: str,
        usage: UsageContext,
        settings: Settings | None = None,
        client: Any | None = None,
    ):
        self.settings = settings or get_settings()
        self.usage = usage
        self._client = client or OpenAI(
            api_key=api_key,
            timeout=self.settings.LLM_TIMEOUT_SECONDS,
            max_retries=self.settings.LLM_MAX_RETRIES,
        )

    # ------------------------------------------------------------------
    # Summarization
    # ------------------------------------------------------------------

    def summarize(
        self,
        text: str,
        constraints: SummaryConstraints,
        fallback_tags: list[str],
        title: str | None = None,
        function_name: str = "summarize-document",
    ) -> SummaryResult:
        """
        Summarize normalized text under a call-site contract.

        Args:
            text: Normalized plain text (markup already stripped)
            constraints: Sentence/decision/tag contract for this call site
            fallback_tags: Tags used when the model supplies too few
            title: Optional document title included in the prompt
            function_name: Usage-log label

        Returns:
            Validated SummaryResult

        Raises:
            InvalidRequest: If text is empty
            MalformedModelResponse: On provider error, timeout or invalid output
        """
        if not text.strip():
            raise InvalidRequest("Nothing to summarize.")

        content = truncate_to_chars(text, self.settings.SUMMARY_CHAR_LIMIT)
        user_prompt = f"Document Content:\n{content}"
        if title:
            user_prompt = f"Document Title: {title}\n\n{user_prompt}"

        messages = [
            {"role": "system", "content": build_summary_system_prompt(constraints)},
            {"role": "user", "content": user_prompt},
        ]

        model = self.settings.SUMMARY_MODEL
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=SUMMARY_TEMPERATURE,
                max_tokens=constraints.max_output_tokens,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error(f"Summarization call failed ({function_name}): {e}")
            raise MalformedModelResponse("Failed to generate summary from OpenAI.") from e

        raw = _first_message_content(response)
        self._record(function_name, model, len(content), len(raw or ""))

        return decode_summary(raw, constraints, fallback_tags)

    # ------------------------------------------------------------------
    # Free-text completion
    # ------------------------------------------------------------------

    def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        function_name: str,
        max_tokens: int = 400,
        temperature: float = 0.25,
        model: str | None = None,
    ) -> str:
        """Run a plain chat completion and return the trimmed text.

        Raises:
            MalformedModelResponse: On provider error, timeout or empty output
        """
        model = model or self.settings.PROFILE_MODEL
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"Completion call failed ({function_name}): {e}")
            raise MalformedModelResponse("AI completion failed.") from e

        text = (_first_message_content(response) or "").strip()
        self._record(function_name, model, len(system_prompt) + len(user_prompt), len(text))

        if not text:
            raise MalformedModelResponse("AI did not return any text.")
        return text

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def embed(self, text: str, function_name: str = "generate-embedding") -> list[float]:
        """
        Embed a single text with the configured embedding model.

        Raises:
            InvalidRequest: If text is empty
            EmbeddingFailed: On provider error, timeout, missing vector or
                dimension mismatch
        """
        if not text.strip():
            raise InvalidRequest("Nothing to embed.")

        model = self.settings.EMBEDDING_MODEL
        try:
            response = self._client.embeddings.create(model=model, input=text)
        except OpenAIError as e:
            logger.error(f"Embedding call failed ({function_name}): {e}")
            raise EmbeddingFailed() from e

        data = getattr(response, "data", None) or []
        vector = getattr(data[0], "embedding", None) if data else None
        if not isinstance(vector, list) or not vector:
            raise EmbeddingFailed("Embedding response missing vector data.")

        if len(vector) != self.settings.EMBEDDING_DIM:
            raise EmbeddingFailed(
                f"Embedding dimension mismatch: expected {self.settings.EMBEDDING_DIM}, "
                f"got {len(vector)}"
            )

        self._record(function_name, model, len(text), len(vector))
        return [float(value) for value in vector]

    def _record(self, function_name: str, model: str, input_length: int, output_length: int) -> None:
        log_ai_usage(
            project_id=self.usage.project_id,
            user_id=self.usage.user_id,
            function_name=function_name,
            model=model,
            input_length=input_length,
            output_length=output_length,
        )


def _first_message_content(response: Any) -> str | None:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    return choices[0].message.content


def open_gateway(project: dict, settings: Settings | None = None) -> ModelGateway:
    """
    Build a gateway billed to the project's owner.

    Resolves the owner's key before any network call is made.

    Raises:
        FeatureDisabled: If the owner disabled AI features
        NoApiKeyConfigured: If no key is available
    """
    from strategist_memory.db.projects import get_user_ai_settings

    settings = settings or get_settings()
    user_settings: UserAISettings = get_user_ai_settings(project["user_id"])
    resolved = resolve_api_key(user_settings, settings.OPENAI_API_KEY)

    logger.debug(
        f"Resolved {resolved.source} API key for project {project['id']}",
        extra={"project_id": str(project["id"])},
    )

    return ModelGateway(
        api_key=resolved.key,
        usage=UsageContext(project_id=project["id"], user_id=project["user_id"]),
        settings=settings,
    )
