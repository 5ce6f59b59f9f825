"""Text chunking for document embeddings."""

from typing import Any


def _find_break(text: str, start: int, end: int) -> int:
    """Last whitespace position in (start, end], or end if there is none."""
    cut = text.rfind(" ", start + 1, end + 1)
    return cut if cut > start else end


def chunk_text(
    text: str,
    max_chars: int = 1200,
    overlap: int = 120,
) -> list[dict[str, Any]]:
    """
    Split normalized text into overlapping chunks.

    Chunks prefer to end on a whitespace boundary so words are not split;
    a single word longer than max_chars is hard-cut.

    Args:
        text: Normalized plain text
        max_chars: Maximum characters per chunk
        overlap: Approximate number of characters shared by adjacent chunks

    Returns:
        List of chunk dicts with:
            - chunk_index: int (0-based, contiguous)
            - content: str (trimmed, never empty)
            - start_char: int
            - end_char: int

    Raises:
        ValueError: If max_chars <= overlap or overlap < 0
    """
    if max_chars <= overlap:
        raise ValueError(f"max_chars ({max_chars}) must be greater than overlap ({overlap})")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")

    text = (text or "").strip()
    if not text:
        return []

    chunks: list[dict[str, Any]] = []
    start = 0
    text_length = len(text)

    while start < text_length:
        end = min(start + max_chars, text_length)
        if end < text_length:
            end = _find_break(text, start, end)

        content = text[start:end].strip()
        if content:
            chunks.append(
                {
                    "chunk_index": len(chunks),
                    "content": content,
                    "start_char": start,
                    "end_char": end,
                }
            )

        if end >= text_length:
            break

        # Step back by the overlap, then forward to the next word start
        next_start = max(end - overlap, start + 1)
        space = text.find(" ", next_start, end)
        start = space + 1 if space != -1 else next_start

    return chunks
