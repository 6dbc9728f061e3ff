"""Loader for text-like files.

Reads the raw text with a UTF-8 → replacement fallback and strips the BOM.
Markup (Markdown, HTML, JSON...) is kept verbatim; whitespace normalization
happens in the chunker.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hybridrag.exceptions import ParseError
from hybridrag.ingest.base import BaseLoader
from hybridrag.types import LoadedText

if TYPE_CHECKING:
    from pathlib import Path

__all__ = ["MAX_FILE_SIZE", "TEXT_EXTENSIONS", "TextLoader"]

logger = logging.getLogger(__name__)

MAX_FILE_SIZE: int = 50 * 1024 * 1024  # 50 MB

TEXT_EXTENSIONS = frozenset(
    {".txt", ".text", ".md", ".markdown", ".csv", ".json", ".xml", ".html", ".htm"}
)


class TextLoader(BaseLoader):
    """Reads text-like files as-is."""

    def __init__(self, max_file_size: int = MAX_FILE_SIZE) -> None:
        self._max_file_size = max_file_size

    def load(self, path: Path) -> LoadedText:
        """Read a text file.

        Raises:
            ParseError: If the file is missing, too large, of an unsupported
                type, or cannot be read.
        """
        if not path.exists():
            raise ParseError(f"File not found: {path}")

        if not path.is_file():
            raise ParseError(f"Not a file: {path}")

        if not self.can_load(path):
            raise ParseError(
                f"Unsupported file type {path.suffix!r} for {path.name}. "
                f"Supported: {sorted(TEXT_EXTENSIONS)}"
            )

        _check_file_size(path, self._max_file_size)

        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("UTF-8 decode failed for %s, retrying with replacement", path.name)
            raw = path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            raise ParseError(f"Cannot read {path.name}: {e}") from e

        if raw.startswith("\ufeff"):
            raw = raw[1:]

        logger.info("Loaded %s: %d chars", path.name, len(raw))
        return LoadedText(file_name=path.name, content=raw, source_path=str(path))

    def supported_extensions(self) -> frozenset[str]:
        return TEXT_EXTENSIONS


def _check_file_size(path: Path, max_size: int) -> None:
    """Raises ParseError if the file exceeds ``max_size`` bytes."""
    file_size = path.stat().st_size
    if file_size > max_size:
        raise ParseError(
            f"{path.name} ({file_size} bytes) exceeds maximum size ({max_size} bytes)"
        )
