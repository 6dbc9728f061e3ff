"""Abstract interfaces for the chunk store and the lexical index.

Embeddings are persisted in an opaque serialized form (a JSON array of
floats); ``encode_embedding`` / ``decode_embedding`` are the only code that
knows the format.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from hybridrag.exceptions import MalformedEmbeddingError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from hybridrag.types import Chunk, Document

__all__ = ["BaseChunkStore", "BaseLexicalIndex", "decode_embedding", "encode_embedding"]

logger = logging.getLogger(__name__)


def encode_embedding(vector: Sequence[float]) -> str:
    """Serialize an embedding vector for storage."""
    return json.dumps([float(v) for v in vector])


def decode_embedding(raw: str | None) -> list[float]:
    """Deserialize a stored embedding.

    Raises:
        MalformedEmbeddingError: If ``raw`` is empty, not JSON, or not a
            flat array of numbers.
    """
    if not raw:
        raise MalformedEmbeddingError("Stored embedding is empty")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedEmbeddingError(f"Stored embedding is not valid JSON: {e}") from e

    if not isinstance(data, list) or not all(
        isinstance(v, int | float) and not isinstance(v, bool) for v in data
    ):
        raise MalformedEmbeddingError("Stored embedding is not an array of numbers")
    return [float(v) for v in data]


class BaseChunkStore(ABC):
    """Persistent corpus of documents and their chunks.

    Implementations must support concurrent readers: the retrieval engine
    scans the store from multiple threads without locking.
    """

    @abstractmethod
    def add_document(self, file_name: str, content: str) -> Document:
        """Persist a document and return it with its assigned id.

        Raises:
            StoreError: If storage fails.
        """

    @abstractmethod
    def add_chunks(self, document_id: int, chunks: Sequence[str]) -> list[Chunk]:
        """Persist chunk texts for a document; ``chunk_index`` follows input order.

        Raises:
            StoreError: If storage fails.
        """

    @abstractmethod
    def get_documents(self) -> list[Document]:
        """Return all documents, oldest first."""

    @abstractmethod
    def get_document(self, document_id: int) -> Document | None:
        """Return one document, or ``None`` if it does not exist."""

    @abstractmethod
    def get_document_name(self, document_id: int) -> str | None:
        """Return the document's display (file) name, or ``None``."""

    @abstractmethod
    def delete_document(self, document_id: int) -> int:
        """Delete a document and all its chunks.

        Returns:
            Number of chunks deleted.

        Raises:
            StoreError: If deletion fails.
        """

    @abstractmethod
    def get_chunks(self, chunk_ids: Iterable[int]) -> dict[int, Chunk]:
        """Look up chunks by id. Missing ids are absent from the result."""

    @abstractmethod
    def get_document_chunks(self, document_id: int) -> list[Chunk]:
        """Return a document's chunks ordered by ``chunk_index``."""

    @abstractmethod
    def get_all_chunks(self) -> list[Chunk]:
        """Return every chunk, with or without an embedding."""

    @abstractmethod
    def get_all_chunks_with_embeddings(self) -> list[Chunk]:
        """Full scan of chunks that have a stored embedding."""

    @abstractmethod
    def get_chunks_without_embeddings(self) -> list[Chunk]:
        """Return chunks still waiting for embedding generation."""

    @abstractmethod
    def get_chunk_embedding(self, chunk_id: int) -> list[float] | None:
        """Return a chunk's decoded embedding, or ``None`` if it has none.

        Raises:
            MalformedEmbeddingError: If the stored value cannot be decoded.
        """

    @abstractmethod
    def update_chunk_embedding(self, chunk_id: int, vector: Sequence[float]) -> None:
        """Attach an embedding to a chunk.

        Raises:
            StoreError: If the update fails.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the total number of chunks in the store."""


class BaseLexicalIndex(ABC):
    """Keyword (full-text) search over chunk content."""

    @abstractmethod
    def search(self, query: str, limit: int) -> list[tuple[int, float]]:
        """Search chunk content for query terms.

        Args:
            query: Raw user query.
            limit: Maximum number of hits.

        Returns:
            ``(chunk_id, raw_score)`` pairs ranked best first by the
            backend's own score convention. An empty index yields ``[]``.

        Raises:
            LexicalBackendError: If the backend fails.
        """
