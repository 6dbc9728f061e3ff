"""Hybrid retrieval engine.

Per query: embed → full-scan cosine search → keyword search → RRF fusion →
top-K truncation → enrichment with document names. The engine keeps no
state between queries; concurrent calls are safe when the store and
lexical index support concurrent reads.
"""

from __future__ import annotations

import logging
import re
import time
from typing import TYPE_CHECKING, Protocol

from hybridrag.exceptions import (
    EmbeddingError,
    InvalidParameterError,
    InvalidQueryError,
    InvalidTopKError,
    MalformedEmbeddingError,
    RetrievalCancelledError,
    StoreError,
)
from hybridrag.registry import default_registry
from hybridrag.retrieve.fusion import DEFAULT_RRF_K, fusion_formula, reciprocal_rank_fusion
from hybridrag.retrieve.scoring import cosine_similarity, lexical_score
from hybridrag.retrieve.trace import (
    STAGE_BUILD_TRACE,
    STAGE_EMBED_QUERY,
    STAGE_KEYWORD_SEARCH,
    STAGE_LOAD_CHUNKS,
    STAGE_MERGE_RERANK,
    STAGE_VECTOR_SEARCH,
    TraceRecorder,
)
from hybridrag.store.base import BaseLexicalIndex, decode_embedding
from hybridrag.tokens import EstimationTokenCounter, make_token_counter
from hybridrag.types import (
    RetrievalMetrics,
    RetrievalMode,
    RetrievalResult,
    RetrievedChunk,
)

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig
    from hybridrag.embed.base import BaseEmbedder
    from hybridrag.store.base import BaseChunkStore
    from hybridrag.tokens import TokenCounter
    from hybridrag.types import Chunk, PipelineTrace, RetrievalCandidate

__all__ = [
    "CancelToken",
    "RetrievalEngine",
    "UNKNOWN_DOCUMENT",
    "balance_weights",
    "coerce_mode",
]

logger = logging.getLogger(__name__)

UNKNOWN_DOCUMENT = "Unknown"

# Keyword search fetches this many times top_k so fusion has room to re-rank.
LEXICAL_HEADROOM = 2

_TERM_RE = re.compile(r"\w+")


class CancelToken(Protocol):
    """Cancellation signal, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


def balance_weights(hybrid_balance: float) -> tuple[float, float]:
    """Map a 0..1 vector/keyword balance to RRF weights.

    0.5 gives (1.0, 1.0), i.e. plain RRF; 1.0 counts vector ranks only.
    """
    return 2.0 * hybrid_balance, 2.0 * (1.0 - hybrid_balance)


def query_terms(query: str) -> list[str]:
    """Distinct lowercase query words longer than one character."""
    return list(dict.fromkeys(t for t in _TERM_RE.findall(query.lower()) if len(t) > 1))


def matched_terms(terms: list[str], content: str) -> tuple[str, ...]:
    """Query terms that prefix-match a word of ``content``."""
    if not terms:
        return ()
    words = set(_TERM_RE.findall(content.lower()))
    return tuple(t for t in terms if any(w.startswith(t) for w in words))


def _check_cancel(cancel: CancelToken | None, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info("Retrieval cancelled before %s", stage)
        raise RetrievalCancelledError(f"Retrieval cancelled before {stage}")


def coerce_mode(mode: RetrievalMode | str) -> RetrievalMode:
    """Accept the enum or its value in any case."""
    if isinstance(mode, RetrievalMode):
        return mode
    try:
        return RetrievalMode(str(mode).lower())
    except ValueError as e:
        valid = [m.value for m in RetrievalMode]
        raise InvalidParameterError(f"Unknown retrieval mode {mode!r}. Valid: {valid}") from e


def _validate(
    query: str,
    top_k: int,
    min_similarity: float,
    rrf_k: float,
    hybrid_balance: float,
) -> None:
    if not isinstance(query, str) or not query.strip():
        raise InvalidQueryError("Query must be a non-empty string")
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k < 1:
        raise InvalidTopKError(f"top_k must be a positive integer, got {top_k!r}")
    if not 0.0 <= min_similarity <= 1.0:
        raise InvalidParameterError(f"min_similarity must be in [0, 1], got {min_similarity}")
    if rrf_k <= 0:
        raise InvalidParameterError(f"rrf_k must be > 0, got {rrf_k}")
    if not 0.0 <= hybrid_balance <= 1.0:
        raise InvalidParameterError(f"hybrid_balance must be in [0, 1], got {hybrid_balance}")


class _DocumentNames:
    """Per-query memo of document display names."""

    def __init__(self, store: BaseChunkStore) -> None:
        self._store = store
        self._names: dict[int, str] = {}

    def get(self, document_id: int) -> str:
        if document_id not in self._names:
            try:
                name = self._store.get_document_name(document_id)
            except StoreError as e:
                logger.warning("Document name lookup failed for id=%d: %s", document_id, e)
                name = None
            self._names[document_id] = name or UNKNOWN_DOCUMENT
        return self._names[document_id]


class RetrievalEngine:
    """Hybrid vector + keyword retrieval over a chunk store.

    Failure policy:
        - Query embedding fails: ``EmbeddingError`` propagates (Vector and
          Hybrid alike); no partial result.
        - No embedder, or an empty query vector: vector search contributes
          nothing and the query proceeds.
        - Keyword backend fails: logged, zero keyword matches.
        - Embedding scan fails to load: logged, zero vector matches.
        - Keyword-only chunks fail to load: logged, those candidates dropped.
        - A stored embedding is malformed: that chunk is skipped.

    Usage::

        engine = RetrievalEngine(store, lexical_index=store, embedder=embedder)
        result = engine.retrieve("how does fusion work", top_k=5)
        result, trace = engine.retrieve_with_trace("how does fusion work")
    """

    def __init__(
        self,
        store: BaseChunkStore,
        lexical_index: BaseLexicalIndex | None = None,
        embedder: BaseEmbedder | None = None,
        *,
        token_counter: TokenCounter | None = None,
        preview_chars: int = 200,
    ) -> None:
        if lexical_index is None and isinstance(store, BaseLexicalIndex):
            lexical_index = store
        self._store = store
        self._lexical_index = lexical_index
        self._embedder = embedder
        self._token_counter = token_counter or EstimationTokenCounter()
        self._preview_chars = preview_chars

    @classmethod
    def from_config(
        cls,
        config: HybridRagConfig,
        store: BaseChunkStore,
        embedder: BaseEmbedder | None = None,
    ) -> RetrievalEngine:
        """Build an engine with the lexical backend and tokenizer named in config.

        Raises:
            PluginError: If the lexical backend is unknown or unsupported by ``store``.
            ConfigError: If the tokenizer is unknown.
        """
        lexical_index = default_registry.create(
            "lexical", config.retrieval.lexical_backend, config, store=store
        )
        return cls(
            store,
            lexical_index=lexical_index,
            embedder=embedder,
            token_counter=make_token_counter(config.trace.tokenizer),
            preview_chars=config.trace.preview_chars,
        )

    def retrieve(
        self,
        query: str,
        top_k: int = 5,
        min_similarity: float = 0.7,
        mode: RetrievalMode | str = RetrievalMode.HYBRID,
        rrf_k: float = DEFAULT_RRF_K,
        *,
        hybrid_balance: float = 0.5,
        cancel: CancelToken | None = None,
    ) -> RetrievalResult:
        """Return the ``top_k`` most relevant chunks for ``query``.

        Args:
            query: Natural-language query (non-empty).
            top_k: Maximum number of chunks returned.
            min_similarity: Cosine floor for entering the vector ranking.
            mode: Vector, keyword or hybrid search.
            rrf_k: Reciprocal-rank-fusion constant.
            hybrid_balance: 0..1 weight of vector vs keyword ranks.
            cancel: Checked between stages; a set signal aborts the query.

        Raises:
            InvalidQueryError: Empty query.
            InvalidTopKError: ``top_k`` below 1.
            InvalidParameterError: Other out-of-range arguments.
            EmbeddingError: Query embedding failed in a vector mode.
            RetrievalCancelledError: ``cancel`` was set.
        """
        result, _ = self._run(
            query, top_k, min_similarity, mode, rrf_k, hybrid_balance, cancel, trace=False
        )
        return result

    def retrieve_with_trace(
        self,
        query: str,
        top_k: int = 5,
        min_similarity: float = 0.7,
        mode: RetrievalMode | str = RetrievalMode.HYBRID,
        rrf_k: float = DEFAULT_RRF_K,
        *,
        hybrid_balance: float = 0.5,
        cancel: CancelToken | None = None,
    ) -> tuple[RetrievalResult, PipelineTrace]:
        """Same as :meth:`retrieve`, plus a trace of every candidate and stage."""
        result, recorder = self._run(
            query, top_k, min_similarity, mode, rrf_k, hybrid_balance, cancel, trace=True
        )
        return result, recorder.build()

    def get_relevant_context(
        self,
        query: str,
        top_k: int = 3,
        min_similarity: float = 0.75,
    ) -> str:
        """Vector-only retrieval rendered as one context string ("" if nothing matches)."""
        return self.retrieve(query, top_k, min_similarity, RetrievalMode.VECTOR).combined_context

    # ── Pipeline ────────────────────────────────────────────────────

    def _run(
        self,
        query: str,
        top_k: int,
        min_similarity: float,
        mode: RetrievalMode | str,
        rrf_k: float,
        hybrid_balance: float,
        cancel: CancelToken | None,
        *,
        trace: bool,
    ) -> tuple[RetrievalResult, TraceRecorder]:
        mode = coerce_mode(mode)
        _validate(query, top_k, min_similarity, rrf_k, hybrid_balance)

        started = time.perf_counter()
        vector_weight, keyword_weight = balance_weights(hybrid_balance)
        recorder = TraceRecorder(
            query,
            mode,
            fusion_formula(rrf_k, vector_weight, keyword_weight),
            preview_chars=self._preview_chars,
        )

        chunks_by_id: dict[int, Chunk] = {}
        vector_hits: list[tuple[int, float]] = []
        keyword_hits: list[tuple[int, float]] = []
        scanned = 0

        if mode.uses_vector:
            _check_cancel(cancel, STAGE_EMBED_QUERY)
            query_vector = recorder.measure(STAGE_EMBED_QUERY, self._embed_query, query)

            if query_vector:
                _check_cancel(cancel, STAGE_LOAD_CHUNKS)
                with recorder.stage(STAGE_LOAD_CHUNKS):
                    embedded = self._load_embedded_chunks()
                scanned = len(embedded)
                with recorder.stage(STAGE_VECTOR_SEARCH):
                    vector_hits = self._vector_search(query_vector, embedded, min_similarity)
                chunks_by_id.update((c.chunk_id, c) for c in embedded)
            else:
                logger.info("No query embedding available; vector search skipped")

        if mode.uses_keyword:
            _check_cancel(cancel, STAGE_KEYWORD_SEARCH)
            with recorder.stage(STAGE_KEYWORD_SEARCH):
                keyword_hits = self._keyword_search(query, top_k * LEXICAL_HEADROOM)

        _check_cancel(cancel, STAGE_MERGE_RERANK)
        terms = query_terms(query)
        names = _DocumentNames(self._store)
        with recorder.stage(STAGE_MERGE_RERANK):
            fused = reciprocal_rank_fusion(
                vector_hits,
                keyword_hits,
                rrf_k,
                vector_weight=vector_weight,
                keyword_weight=keyword_weight,
            )
            ranked = self._rank(fused, chunks_by_id)
            selected = ranked[:top_k]
            chunks = tuple(
                self._enrich(c, chunks_by_id[c.chunk_id], names, terms) for c in selected
            )

        if trace:
            with recorder.stage(STAGE_BUILD_TRACE):
                self._record_candidates(recorder, ranked, top_k, chunks_by_id, names, terms)

        total_ms = (time.perf_counter() - started) * 1000.0
        embedding_ms = recorder.elapsed_ms(STAGE_EMBED_QUERY)
        metrics = RetrievalMetrics(
            mode=mode,
            top_k=top_k,
            min_similarity=min_similarity,
            rrf_k=rrf_k,
            embedding_time_ms=embedding_ms,
            retrieval_time_ms=max(total_ms - embedding_ms, 0.0),
            total_time_ms=total_ms,
            total_chunks_searched=scanned,
            vector_matches=len(vector_hits),
            keyword_matches=len(keyword_hits),
            final_results=len(chunks),
            timings=recorder.timings,
        )

        logger.info(
            "Retrieved %d chunks for %s query (vector=%d, keyword=%d, scanned=%d) in %.1fms",
            len(chunks),
            mode.value,
            len(vector_hits),
            len(keyword_hits),
            scanned,
            total_ms,
        )

        result = RetrievalResult(chunks=chunks, metrics=metrics)
        return result, recorder

    def _embed_query(self, query: str) -> list[float]:
        if self._embedder is None:
            return []
        try:
            return list(self._embedder.embed_query(query))
        except EmbeddingError:
            logger.error("Query embedding failed")
            raise
        except Exception as e:
            logger.error("Query embedding failed: %s", e)
            raise EmbeddingError(f"Query embedding failed: {e}") from e

    def _load_embedded_chunks(self) -> list[Chunk]:
        try:
            return self._store.get_all_chunks_with_embeddings()
        except StoreError as e:
            logger.warning("Embedding scan failed, continuing without vector hits: %s", e)
            return []

    def _vector_search(
        self,
        query_vector: list[float],
        chunks: list[Chunk],
        min_similarity: float,
    ) -> list[tuple[int, float]]:
        """Score every embedded chunk; keep those at or above the floor."""
        hits: list[tuple[int, float]] = []
        skipped = 0
        for chunk in chunks:
            try:
                vector = decode_embedding(chunk.embedding)
            except MalformedEmbeddingError as e:
                logger.debug("Skipping chunk %d: %s", chunk.chunk_id, e)
                skipped += 1
                continue
            score = cosine_similarity(query_vector, vector)
            if score >= min_similarity:
                hits.append((chunk.chunk_id, score))

        if skipped:
            logger.warning("Skipped %d chunks with malformed embeddings", skipped)
        return hits

    def _keyword_search(self, query: str, limit: int) -> list[tuple[int, float]]:
        if self._lexical_index is None:
            logger.debug("No lexical index configured; keyword search skipped")
            return []
        try:
            raw_hits = self._lexical_index.search(query, limit)
        except Exception as e:
            logger.warning("Keyword search failed, continuing without keyword hits: %s", e)
            return []
        return [(chunk_id, lexical_score(score)) for chunk_id, score in raw_hits]

    def _rank(
        self,
        fused: dict[int, RetrievalCandidate],
        chunks_by_id: dict[int, Chunk],
    ) -> list[RetrievalCandidate]:
        """Sort by fused score, chunk id ascending on ties; drop vanished chunks."""
        missing = [cid for cid in fused if cid not in chunks_by_id]
        if missing:
            try:
                chunks_by_id.update(self._store.get_chunks(missing))
            except StoreError as e:
                logger.warning(
                    "Failed to load %d keyword-only chunks, dropping them: %s", len(missing), e
                )

        ranked = sorted(fused.values(), key=lambda c: (-c.fused_score, c.chunk_id))
        present = [c for c in ranked if c.chunk_id in chunks_by_id]
        if len(present) < len(ranked):
            logger.debug("Dropped %d candidates deleted during the query", len(ranked) - len(present))
        return present

    @staticmethod
    def _enrich(
        candidate: RetrievalCandidate,
        chunk: Chunk,
        names: _DocumentNames,
        terms: list[str],
    ) -> RetrievedChunk:
        return RetrievedChunk(
            chunk_id=chunk.chunk_id,
            document_id=chunk.document_id,
            document_name=names.get(chunk.document_id),
            content=chunk.content,
            chunk_index=chunk.chunk_index,
            vector_score=candidate.vector_score,
            keyword_score=candidate.keyword_score,
            fused_score=candidate.fused_score,
            matched_terms=matched_terms(terms, chunk.content),
        )

    def _record_candidates(
        self,
        recorder: TraceRecorder,
        ranked: list[RetrievalCandidate],
        top_k: int,
        chunks_by_id: dict[int, Chunk],
        names: _DocumentNames,
        terms: list[str],
    ) -> None:
        for rank, candidate in enumerate(ranked, start=1):
            chunk = chunks_by_id[candidate.chunk_id]
            recorder.add_candidate(
                rank=rank,
                chunk_id=chunk.chunk_id,
                source_name=names.get(chunk.document_id),
                chunk_index=chunk.chunk_index,
                vector_score=candidate.vector_score,
                keyword_score=candidate.keyword_score,
                final_score=candidate.fused_score,
                token_count=self._token_counter.count(chunk.content),
                included=rank <= top_k,
                content=chunk.content,
                matched_terms=matched_terms(terms, chunk.content),
            )
