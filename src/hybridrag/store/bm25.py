"""In-memory BM25 keyword index built with rank_bm25.

An alternative to the FTS5 index for stores without full-text search, or
when BM25 scoring over the whole corpus is preferred. The index is a
snapshot: rebuild it after adding or removing documents.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from rank_bm25 import BM25L

from hybridrag.exceptions import LexicalBackendError
from hybridrag.store.base import BaseLexicalIndex

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hybridrag.store.base import BaseChunkStore
    from hybridrag.types import Chunk

__all__ = ["BM25Index", "tokenize"]

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens."""
    return _TOKEN_RE.findall(text.lower())


class BM25Index(BaseLexicalIndex):
    """BM25L over a fixed set of chunks.

    BM25L keeps IDF positive even for terms found in most chunks, so tiny
    or uniform corpora still rank their matches. Only chunks containing at
    least one query term are returned; scores are positive, higher is better.
    """

    def __init__(self, chunks: Iterable[Chunk], k1: float = 1.5, b: float = 0.75) -> None:
        self._chunk_ids: list[int] = []
        self._vocab: list[frozenset[str]] = []
        corpus: list[list[str]] = []
        for chunk in chunks:
            tokens = tokenize(chunk.content)
            self._chunk_ids.append(chunk.chunk_id)
            self._vocab.append(frozenset(tokens))
            corpus.append(tokens)

        # rank_bm25 divides by corpus size, so an empty corpus gets no model
        self._bm25 = BM25L(corpus, k1=k1, b=b) if corpus else None
        logger.info("Built BM25 index over %d chunks", len(self._chunk_ids))

    @classmethod
    def from_store(cls, store: BaseChunkStore, k1: float = 1.5, b: float = 0.75) -> BM25Index:
        """Snapshot every chunk currently in ``store``."""
        return cls(store.get_all_chunks(), k1=k1, b=b)

    def __len__(self) -> int:
        return len(self._chunk_ids)

    def search(self, query: str, limit: int) -> list[tuple[int, float]]:
        terms = tokenize(query)
        if self._bm25 is None or not terms or limit <= 0:
            return []

        try:
            scores = self._bm25.get_scores(terms)
        except Exception as e:
            raise LexicalBackendError(f"BM25 scoring failed: {e}") from e

        query_vocab = set(terms)
        ranked = sorted(
            (
                (self._chunk_ids[i], float(score))
                for i, score in enumerate(scores)
                if query_vocab & self._vocab[i]
            ),
            key=lambda hit: -hit[1],
        )
        return ranked[:limit]
