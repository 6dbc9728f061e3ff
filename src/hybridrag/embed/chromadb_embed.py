"""Local ONNX embedding provider backed by ChromaDB's default function.

Runs all-MiniLM-L6-v2 through ONNX runtime locally, without a server or API key.
The model is auto-downloaded on first use (~80MB).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chromadb.utils.embedding_functions import DefaultEmbeddingFunction

from hybridrag.embed.base import BaseEmbedder
from hybridrag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig

__all__ = ["ChromaDBEmbedder"]

logger = logging.getLogger(__name__)


class ChromaDBEmbedder(BaseEmbedder):
    """Offline embedding provider using ChromaDB's ONNX embedding function.

    Uses ``all-MiniLM-L6-v2`` (384 dimensions).

    Config fields used::

        [embedding]
        provider = "chromadb"
        model = "all-MiniLM-L6-v2"
        query_prefix = ""
        passage_prefix = ""
    """

    _FIXED_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, config: HybridRagConfig) -> None:
        if config.embedding.model and config.embedding.model != self._FIXED_MODEL:
            logger.warning(
                "ChromaDB provider only supports %s, ignoring model=%r",
                self._FIXED_MODEL,
                config.embedding.model,
            )

        try:
            self._ef = DefaultEmbeddingFunction()
        except Exception as e:
            raise EmbeddingError(f"Failed to initialize ChromaDB embedding function: {e}") from e

        self._query_prefix = config.embedding.query_prefix
        self._passage_prefix = config.embedding.passage_prefix
        self._dimension: int | None = None
        logger.info("ChromaDBEmbedder initialized (ONNX %s)", self._FIXED_MODEL)

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for passages.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        if not texts:
            return []

        vectors = self._run([self._passage_prefix + t for t in texts])
        logger.info("Embedded %d passages via ChromaDB (ONNX)", len(vectors))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Generate an embedding for a search query.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        return self._run([self._query_prefix + text])[0]

    @property
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors (384 for MiniLM)."""
        if self._dimension is None:
            vec = self.embed_query("dimension probe")
            self._dimension = len(vec)
        return self._dimension

    def _run(self, texts: list[str]) -> list[list[float]]:
        try:
            raw = self._ef(texts)
        except Exception as e:
            raise EmbeddingError(f"ChromaDB embedding failed: {e}") from e

        if len(raw) != len(texts):
            raise EmbeddingError(f"ChromaDB returned {len(raw)} embeddings for {len(texts)} inputs")

        vectors = [[float(v) for v in vec] for vec in raw]
        if vectors and self._dimension is None:
            self._dimension = len(vectors[0])
        return vectors
