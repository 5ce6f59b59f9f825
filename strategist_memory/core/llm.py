"""LLM response helpers used by summary decoding."""

import json
import re
from typing import Any


def strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str) -> Any:
    """
    Parse LLM output as JSON after removing code fences.

    Raises:
        json.JSONDecodeError: If the cleaned output is not valid JSON
    """
    return json.loads(strip_llm_fences(raw_output))
