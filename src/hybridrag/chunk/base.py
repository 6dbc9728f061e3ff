"""Abstract base class for chunking strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig

__all__ = ["BaseChunker"]

logger = logging.getLogger(__name__)


class BaseChunker(ABC):
    """Base class for all chunking strategies.

    Subclasses split normalized document text into chunk strings, in
    document order.
    """

    @abstractmethod
    def chunk(self, text: str, config: HybridRagConfig) -> list[str]:
        """Split document text into chunks.

        Args:
            text: Normalized document text (see ``normalize_text``).
            config: Project configuration (chunk size, overlap, etc.).

        Returns:
            Chunk texts ordered by position in the document.

        Raises:
            ChunkError: If chunking fails.
        """
