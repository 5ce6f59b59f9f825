"""Rich-text normalization for language-model input.

Document bodies are authored as HTML. Everything sent to the model or cut
into chunks goes through ``normalize`` first so that markup never reaches a
prompt, a stored summary, or an embedding.
"""

import html
import re

# Script/style bodies are code, not content
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)

# HTML comments
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)

# Any remaining tag; replaced by a space so adjacent blocks don't fuse words
_TAG_RE = re.compile(r"<[^>]*>")

_WHITESPACE_RE = re.compile(r"\s+")

TRUNCATION_MARKER = "..."


def normalize(rich_text: str | None) -> str:
    """
    Strip markup from a rich-text body and collapse whitespace.

    Total: never raises. ``None`` or empty input yields ``""``.

    Args:
        rich_text: HTML (or plain) document content

    Returns:
        Plain text with single spaces between words, trimmed
    """
    if not rich_text:
        return ""

    text = _SCRIPT_STYLE_RE.sub(" ", rich_text)
    text = _COMMENT_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    # Unescaping can reintroduce angle brackets from &lt;tag&gt; sequences
    text = _TAG_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_to_chars(text: str, max_chars: int) -> str:
    """Cut *text* to *max_chars*, ending in a truncation marker when shortened."""
    if not text or max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(TRUNCATION_MARKER):
        return text[:max_chars]
    return f"{text[: max_chars - len(TRUNCATION_MARKER)]}{TRUNCATION_MARKER}"
