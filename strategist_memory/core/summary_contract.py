"""Structured summary contract for model output.

The summarization model is asked for ``{"summary", "key_decisions", "tags"}``.
``decode_summary`` turns its raw text into a ``SummaryResult`` or raises
``MalformedModelResponse``; callers never see a partially-validated payload.

Guarantees on a decoded result:
- summary: non-empty, <= 400 chars
- key_decisions: 3..max_decisions items, each <= 15 words and <= 120 chars,
  padded with ``DECISION_PLACEHOLDER`` when the model returns fewer than 3
- tags: 2..5 items matching ``[a-z0-9-]+``, <= 24 chars, topped up from the
  fallback tags when the model returns fewer than 2
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from strategist_memory.core.errors import MalformedModelResponse
from strategist_memory.core.llm import parse_llm_json

MAX_SUMMARY_CHARS = 400
MIN_DECISIONS = 3
MAX_DECISION_WORDS = 15
MAX_DECISION_CHARS = 120
MIN_TAGS = 2
MAX_TAGS = 5
MAX_TAG_CHARS = 24

DECISION_PLACEHOLDER = "Decision detail pending."
DEFAULT_FALLBACK_TAGS = ["brand", "strategy"]

_TAG_RE = re.compile(r"^[a-z0-9-]+$")


@dataclass(frozen=True)
class SummaryConstraints:
    """Per-call-site output contract for summarization."""

    min_sentences: int
    max_sentences: int
    max_decisions: int
    max_summary_tokens: int = 80
    include_tags: bool = True
    max_output_tokens: int = 400

    def __post_init__(self) -> None:
        if not MIN_DECISIONS <= self.max_decisions <= 7:
            raise ValueError(f"max_decisions must be between 3 and 7, got {self.max_decisions}")
        if self.min_sentences < 1 or self.max_sentences < self.min_sentences:
            raise ValueError("sentence bounds must satisfy 1 <= min <= max")


# Status-triggered document summary (shown on the document)
DOCUMENT_SUMMARY = SummaryConstraints(min_sentences=2, max_sentences=3, max_decisions=5)

# Published memory entry (retrieved by the assistant)
MEMORY_SUMMARY = SummaryConstraints(min_sentences=1, max_sentences=3, max_decisions=7)


class SummaryResult(BaseModel):
    """Validated summarization output."""

    model_config = ConfigDict(frozen=True)

    summary: str
    key_decisions: list[str]
    tags: list[str]


class _RawSummaryPayload(BaseModel):
    """Shape the model must return before sanitizing."""

    summary: str
    key_decisions: list[Any]
    tags: list[Any] | None = None

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summary is blank")
        return value


def build_fallback_tags(step_name: str | None) -> list[str]:
    """Derive tags from the owning step's name, used when the model gives none."""
    tags: list[str] = []
    if step_name:
        parts = re.split(r"[^a-z0-9]+", step_name.lower())
        tags = [p for p in parts if len(p) > 1][:3]
    for default in DEFAULT_FALLBACK_TAGS:
        if len(tags) >= MIN_TAGS:
            break
        if default not in tags:
            tags.append(default)
    return tags


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[: max_chars - 3].rstrip()}..."


def _sanitize_summary(value: str) -> str:
    return _clip(" ".join(value.split()), MAX_SUMMARY_CHARS)


def _decision_text(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict) and isinstance(item.get("text"), str):
        return item["text"].strip()
    return ""


def sanitize_decisions(items: list[Any], max_decisions: int) -> list[str]:
    """Clean, cap and pad a decision list to the 3..max_decisions window."""
    cleaned: list[str] = []
    for item in items:
        text = _decision_text(item)
        if not text:
            continue
        words = text.split()
        if len(words) > MAX_DECISION_WORDS:
            text = " ".join(words[:MAX_DECISION_WORDS])
        cleaned.append(_clip(text, MAX_DECISION_CHARS))
        if len(cleaned) == max_decisions:
            break

    while len(cleaned) < MIN_DECISIONS:
        cleaned.append(DECISION_PLACEHOLDER)
    return cleaned


def sanitize_tags(items: list[Any] | None, fallback_tags: list[str]) -> list[str]:
    """Normalize tags to lowercase hyphenated tokens, topping up from the fallback."""
    tags: list[str] = []
    for item in items or []:
        if not isinstance(item, str):
            continue
        tag = re.sub(r"\s+", "-", item.strip().lower())
        if not tag or len(tag) > MAX_TAG_CHARS or not _TAG_RE.match(tag):
            continue
        if tag not in tags:
            tags.append(tag)
        if len(tags) == MAX_TAGS:
            break

    for tag in fallback_tags:
        if len(tags) >= MIN_TAGS:
            break
        if tag not in tags:
            tags.append(tag)
    return tags


def decode_summary(
    raw_output: str | None,
    constraints: SummaryConstraints,
    fallback_tags: list[str],
) -> SummaryResult:
    """
    Decode raw model output into a validated SummaryResult.

    Args:
        raw_output: Text content of the chat completion
        constraints: Call-site contract (decision cap, tags on/off)
        fallback_tags: Tags used when the model supplies too few

    Returns:
        SummaryResult honoring the module-level guarantees

    Raises:
        MalformedModelResponse: If the output is not a JSON object with a
            non-blank string summary and a key_decisions list
    """
    if not raw_output or not raw_output.strip():
        raise MalformedModelResponse("Summary response was empty.")

    try:
        parsed = parse_llm_json(raw_output)
    except json.JSONDecodeError as e:
        raise MalformedModelResponse("Summary response was malformed.") from e

    if not isinstance(parsed, dict):
        raise MalformedModelResponse("Summary response was not a JSON object.")

    try:
        payload = _RawSummaryPayload.model_validate(parsed)
    except ValidationError as e:
        raise MalformedModelResponse("Summary response did not match the expected schema.") from e

    tags = sanitize_tags(payload.tags, fallback_tags) if constraints.include_tags else []

    return SummaryResult(
        summary=_sanitize_summary(payload.summary),
        key_decisions=sanitize_decisions(payload.key_decisions, constraints.max_decisions),
        tags=tags,
    )
