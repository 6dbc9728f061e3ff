"""Chunking engine — paragraph-first character splitting with overlap."""

from hybridrag.chunk.base import BaseChunker
from hybridrag.chunk.text import ParagraphChunker, normalize_text, split_text

__all__ = ["BaseChunker", "ParagraphChunker", "normalize_text", "split_text"]
