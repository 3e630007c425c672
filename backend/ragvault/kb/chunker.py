"""Deterministic token-window text chunking."""
import logging
from typing import NamedTuple
import tiktoken

logger = logging.getLogger(__name__)


class TextChunk(NamedTuple):
    """A contiguous slice of an entry's extracted text."""
    order: int
    content: str
    start_idx: int
    end_idx: int


def chunk_text(
    text: str,
    chunk_size: int = 800,
    chunk_overlap: int = 200,
    encoding_name: str = "cl100k_base",  # OpenAI's tiktoken encoding
) -> list[TextChunk]:
    """
    Chunk text into overlapping segments based on token count.

    Offsets are token positions, or character positions when the
    character fallback is used.

    Args:
        text: Input text to chunk
        chunk_size: Target tokens per chunk (default: 800)
        chunk_overlap: Overlap tokens between chunks (default: 200)
        encoding_name: Tiktoken encoding to use

    Returns:
        Chunks in source order, numbered from 0
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    try:
        encoding = tiktoken.get_encoding(encoding_name)
    except Exception as e:
        logger.warning(f"tiktoken encoding {encoding_name} unavailable ({e}), chunking by characters")
        return _chunk_by_chars(text, chunk_size * 4, chunk_overlap * 4)

    tokens = encoding.encode(text)
    return _window(tokens, chunk_size, chunk_overlap, encoding.decode)


def _chunk_by_chars(text: str, chunk_size: int, chunk_overlap: int) -> list[TextChunk]:
    """Fallback character-based chunking when tiktoken unavailable."""
    return _window(text, chunk_size, chunk_overlap, lambda piece: piece)


def _window(units, chunk_size: int, chunk_overlap: int, decode) -> list[TextChunk]:
    chunks: list[TextChunk] = []
    start = 0

    while start < len(units):
        end = min(start + chunk_size, len(units))
        content = decode(units[start:end])

        # Skip empty or whitespace-only windows
        if content.strip():
            chunks.append(TextChunk(
                order=len(chunks),
                content=content,
                start_idx=start,
                end_idx=end,
            ))

        if end == len(units):
            break

        start += chunk_size - chunk_overlap

    return chunks
