"""Ingestion pipeline for hybridrag.

Composes loader → chunker → store for document intake, and store →
embedder → store for batch embedding generation. All collaborators are
injected via the constructor.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hybridrag.chunk.text import normalize_text
from hybridrag.exceptions import EmbeddingError, ParseError, PipelineError
from hybridrag.types import EmbeddingProgress

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from hybridrag.chunk.base import BaseChunker
    from hybridrag.config import HybridRagConfig
    from hybridrag.embed.base import BaseEmbedder
    from hybridrag.ingest.base import BaseLoader
    from hybridrag.store.base import BaseChunkStore
    from hybridrag.types import Chunk, Document

__all__ = ["Pipeline"]

logger = logging.getLogger(__name__)


class Pipeline:
    """Orchestrates document intake and embedding generation.

    Usage::

        pipeline = Pipeline(
            loader=TextLoader(),
            chunker=ParagraphChunker(),
            store=SqliteStore(db_path),
            config=config,
            embedder=ollama_embedder,
        )
        document, chunks = pipeline.add_document(Path("notes.md"))
        for event in pipeline.generate_embeddings():
            ...
    """

    def __init__(
        self,
        loader: BaseLoader,
        chunker: BaseChunker,
        store: BaseChunkStore,
        config: HybridRagConfig,
        embedder: BaseEmbedder | None = None,
    ) -> None:
        self.loader = loader
        self.chunker = chunker
        self.store = store
        self.config = config
        self.embedder = embedder

    def add_document(self, path: Path) -> tuple[Document, list[Chunk]]:
        """Load, chunk and store a document. Embeddings are generated separately.

        Returns:
            The stored document and its chunks.

        Raises:
            ParseError: If the file cannot be read or holds no text.
            PipelineError: If chunking or storage fails.
        """
        loaded = self.loader.load(path)
        content = normalize_text(loaded.content)
        if not content:
            raise ParseError(f"{loaded.file_name} contains no text")

        document: Document | None = None
        try:
            texts = self.chunker.chunk(content, self.config)
            document = self.store.add_document(loaded.file_name, content)
            chunks = self.store.add_chunks(document.document_id, texts)
        except Exception as e:
            if document is not None:
                self._discard(document)
            raise PipelineError(f"Pipeline failed processing {path}: {e}") from e

        if not chunks:
            logger.warning("No chunks produced for %s", loaded.file_name)
        logger.info(
            "Added %s as document %d with %d chunks",
            loaded.file_name,
            document.document_id,
            len(chunks),
        )
        return document, chunks

    def _discard(self, document: Document) -> None:
        """Delete a document whose chunks could not be stored."""
        try:
            self.store.delete_document(document.document_id)
        except Exception as e:
            logger.error(
                "Failed to discard partial document %d: %s", document.document_id, e
            )
        else:
            logger.warning("Discarded partial document %d", document.document_id)

    def remove(self, document_id: int) -> int:
        """Remove a document and its chunks.

        Returns:
            Number of chunks removed.

        Raises:
            PipelineError: If the document does not exist or removal fails.
        """
        try:
            if self.store.get_document(document_id) is None:
                raise PipelineError(f"No document with id {document_id}")
            count = self.store.delete_document(document_id)
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(f"Pipeline failed removing document {document_id}: {e}") from e

        logger.info("Removed document %d (%d chunks)", document_id, count)
        return count

    def generate_embeddings(self, batch_size: int | None = None) -> Iterator[EmbeddingProgress]:
        """Embed every chunk that has no embedding yet.

        Yields one event per embedded chunk, then a final ``done=True``
        event. Each batch is persisted before its events are yielded, so a
        caller that stops iterating keeps the work done so far.

        Raises:
            PipelineError: If no embedder is configured or ``batch_size`` < 1.
            EmbeddingError: If the embedding provider fails.
        """
        if self.embedder is None:
            raise PipelineError("No embedder configured")
        size = batch_size if batch_size is not None else self.config.embedding.batch_size
        if size < 1:
            raise PipelineError(f"batch_size must be >= 1, got {size}")

        pending = self.store.get_chunks_without_embeddings()
        total = len(pending)
        logger.info("Generating embeddings for %d chunks (batch_size=%d)", total, size)

        processed = 0
        for start in range(0, total, size):
            batch = pending[start : start + size]
            vectors = self.embedder.embed_texts([c.content for c in batch])
            if len(vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedder returned {len(vectors)} vectors for {len(batch)} chunks"
                )
            for chunk, vector in zip(batch, vectors, strict=True):
                self.store.update_chunk_embedding(chunk.chunk_id, vector)

            for chunk in batch:
                processed += 1
                yield EmbeddingProgress(processed=processed, total=total, chunk_id=chunk.chunk_id)

        logger.info("Embedded %d chunks", processed)
        yield EmbeddingProgress(processed=processed, total=total, done=True)
