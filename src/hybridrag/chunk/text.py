"""Paragraph-first character chunker with sentence fallback.

Splits normalized text into chunks sized for embedding models:
- Paragraphs (blank-line separated) are the preferred unit
- Paragraphs longer than ``max_chars`` fall back to sentence splitting
- Each new chunk is seeded with an overlap tail from the previous one,
  cut at a sentence boundary when one is available
- A trailing remainder shorter than ``min_chars`` is dropped
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from hybridrag.chunk.base import BaseChunker
from hybridrag.exceptions import ChunkError

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig

__all__ = ["ParagraphChunker", "normalize_text", "split_text"]

logger = logging.getLogger(__name__)

_NEWLINE_RE = re.compile(r"\r\n|\r")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")
_MULTI_BLANK_RE = re.compile(r"\n{3,}")

# Sentence end followed by whitespace and an uppercase letter. Heuristic only:
# abbreviations split wrongly and scripts without case never split.
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[A-ZÀ-ÖØ-ÞĄĆĘŁŃŚŹŻ])")

_SENTENCE_BOUNDARY_CHARS = ".!?\n"

# An overlap cut closer than this to the end of the window is ignored.
_MIN_OVERLAP_TAIL = 20

_PARAGRAPH_SEP = "\n\n"
_SENTENCE_SEP = " "


def normalize_text(text: str) -> str:
    """Normalize whitespace ahead of chunking.

    - Convert CRLF / CR line endings to LF
    - Collapse runs of spaces and tabs to one space
    - Collapse 3+ consecutive newlines to a blank line
    - Strip leading/trailing whitespace
    """
    text = _NEWLINE_RE.sub("\n", text)
    text = _INLINE_SPACE_RE.sub(" ", text)
    text = _MULTI_BLANK_RE.sub("\n\n", text)
    return text.strip()


def split_sentences(text: str) -> list[str]:
    """Split a paragraph into sentences, dropping empty pieces."""
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def overlap_tail(text: str, max_chars: int) -> str:
    """Return up to ``max_chars`` trailing characters of ``text``.

    When the window contains a sentence boundary that is not at its very
    start and leaves more than a few characters after it, the tail starts
    right after that boundary.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text.strip()

    window = text[-max_chars:]
    boundary = next(
        (i for i, ch in enumerate(window) if ch in _SENTENCE_BOUNDARY_CHARS),
        -1,
    )
    if 0 < boundary < len(window) - _MIN_OVERLAP_TAIL:
        return window[boundary + 1 :].strip()
    return window.strip()


def split_text(
    text: str,
    max_chars: int = 1500,
    overlap_chars: int = 200,
    min_chars: int = 100,
) -> list[str]:
    """Split normalized text into overlapping chunks.

    Args:
        text: Text already passed through ``normalize_text``.
        max_chars: Target upper bound on chunk length.
        overlap_chars: Maximum length of the tail carried into the next chunk.
        min_chars: A chunk is only flushed once it reaches this length.

    Returns:
        Chunk strings in document order. Empty input yields an empty list.

    Raises:
        ChunkError: If the size parameters are inconsistent.
    """
    _validate_sizes(max_chars, overlap_chars, min_chars)

    if not text.strip():
        return []

    chunks: list[str] = []
    buffer = ""

    def flush_if_full(piece: str, sep: str) -> None:
        nonlocal buffer
        if len(buffer) + len(piece) + len(sep) > max_chars and len(buffer) >= min_chars:
            chunks.append(buffer.strip())
            tail = overlap_tail(buffer, overlap_chars)
            buffer = tail + _SENTENCE_SEP if tail else ""

    for raw_paragraph in text.split(_PARAGRAPH_SEP):
        paragraph = raw_paragraph.strip()
        if not paragraph:
            continue

        flush_if_full(paragraph, _PARAGRAPH_SEP)

        if len(paragraph) > max_chars:
            for sentence in split_sentences(paragraph):
                flush_if_full(sentence, _SENTENCE_SEP)
                buffer += sentence + _SENTENCE_SEP
        else:
            buffer += paragraph + _PARAGRAPH_SEP

    remainder = buffer.strip()
    if len(remainder) >= min_chars:
        chunks.append(remainder)
    elif remainder:
        logger.debug("Dropped %d-char trailing remainder below min_chars", len(remainder))

    return chunks


def _validate_sizes(max_chars: int, overlap_chars: int, min_chars: int) -> None:
    if max_chars <= 0:
        raise ChunkError(f"max_chars must be > 0, got {max_chars}")
    if overlap_chars < 0:
        raise ChunkError(f"overlap_chars must be >= 0, got {overlap_chars}")
    if min_chars < 0:
        raise ChunkError(f"min_chars must be >= 0, got {min_chars}")
    if min_chars > max_chars:
        raise ChunkError(f"min_chars ({min_chars}) must not exceed max_chars ({max_chars})")


class ParagraphChunker(BaseChunker):
    """Character-budget chunker preserving paragraph and sentence boundaries.

    Sizes come from the ``[chunk]`` config section. The defaults
    (1500 / 200 / 100 characters) keep chunks under a 512-token
    embedding context for typical prose.
    """

    def chunk(self, text: str, config: HybridRagConfig) -> list[str]:
        """Split normalized text using the configured character budget.

        Args:
            text: Normalized document text.
            config: Project config with chunk settings.

        Returns:
            List of chunk strings.

        Raises:
            ChunkError: If chunking fails.
        """
        cfg = config.chunk
        try:
            chunks = split_text(text, cfg.max_chars, cfg.overlap_chars, cfg.min_chars)
        except ChunkError:
            raise
        except Exception as e:
            logger.error("Failed to chunk text: %s", e)
            raise ChunkError(f"Failed to chunk text: {e}") from e

        logger.info(
            "Chunked %d chars into %d chunks (max_chars=%d, overlap=%d)",
            len(text),
            len(chunks),
            cfg.max_chars,
            cfg.overlap_chars,
        )
        return chunks
