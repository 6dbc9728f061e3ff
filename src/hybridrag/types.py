"""Data contracts for hybridrag.

Frozen dataclasses that flow between the corpus and the retrieval engine:
  Document → list[Chunk] → RetrievalCandidate → RetrievalResult (+ PipelineTrace)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

__all__ = [
    "Chunk",
    "Document",
    "EmbeddingProgress",
    "LoadedText",
    "PipelineTrace",
    "RetrievalCandidate",
    "RetrievalMetrics",
    "RetrievalMode",
    "RetrievalResult",
    "RetrievedChunk",
    "StageTiming",
    "TraceCandidate",
]

CONTEXT_SEPARATOR = "\n\n---\n\n"


class RetrievalMode(str, Enum):
    """Which search modes a query runs."""

    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"

    @property
    def uses_vector(self) -> bool:
        return self in (RetrievalMode.VECTOR, RetrievalMode.HYBRID)

    @property
    def uses_keyword(self) -> bool:
        return self in (RetrievalMode.KEYWORD, RetrievalMode.HYBRID)


@dataclass(frozen=True)
class LoadedText:
    """Text read from a source file, ready for chunking."""

    file_name: str
    content: str
    source_path: str = ""


@dataclass(frozen=True)
class Document:
    """An ingested source file with its cleaned text."""

    document_id: int
    file_name: str
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class Chunk:
    """A contiguous span of a document's text.

    ``embedding`` holds the stored serialized vector (a JSON array) and is
    ``None`` until embedding generation has processed the chunk.
    """

    chunk_id: int
    document_id: int
    content: str
    chunk_index: int
    embedding: str | None = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


@dataclass
class RetrievalCandidate:
    """Per-query fusion accumulator for one chunk. Never persisted."""

    chunk_id: int
    vector_score: float = 0.0
    keyword_score: float = 0.0
    fused_score: float = 0.0
    in_vector: bool = False
    in_keyword: bool = False


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk in the final result, enriched with its source document name."""

    chunk_id: int
    document_id: int
    document_name: str
    content: str
    chunk_index: int
    vector_score: float = 0.0
    keyword_score: float = 0.0
    fused_score: float = 0.0
    matched_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class StageTiming:
    """Elapsed time of one pipeline stage."""

    name: str
    elapsed_ms: float

    def __str__(self) -> str:
        return f"{self.name}: {self.elapsed_ms:.1f}ms"


@dataclass(frozen=True)
class RetrievalMetrics:
    """Counts, timings and the configuration echoed back for one query."""

    mode: RetrievalMode = RetrievalMode.HYBRID
    top_k: int = 0
    min_similarity: float = 0.0
    rrf_k: float = 60.0
    embedding_time_ms: float = 0.0
    retrieval_time_ms: float = 0.0
    total_time_ms: float = 0.0
    total_chunks_searched: int = 0
    vector_matches: int = 0
    keyword_matches: int = 0
    final_results: int = 0
    timings: tuple[StageTiming, ...] = ()


@dataclass(frozen=True)
class RetrievalResult:
    """Ordered (best first) retrieval output for one query."""

    chunks: tuple[RetrievedChunk, ...] = ()
    metrics: RetrievalMetrics = field(default_factory=RetrievalMetrics)

    @property
    def combined_context(self) -> str:
        """Chunk contents joined into a single context block."""
        return CONTEXT_SEPARATOR.join(c.content for c in self.chunks)


@dataclass(frozen=True)
class TraceCandidate:
    """One candidate as seen by the trace, whether or not it made the cut."""

    rank: int
    chunk_id: int
    source_name: str
    chunk_index: int | None
    vector_score: float
    keyword_score: float
    final_score: float
    token_count: int
    included: bool
    preview: str = ""
    matched_terms: tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineTrace:
    """Flight-recorder view of a single query, for diagnostics only."""

    query: str
    mode: RetrievalMode
    fusion_formula: str
    candidates: tuple[TraceCandidate, ...] = ()
    timings: tuple[StageTiming, ...] = ()
    utc: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_time_ms(self) -> float:
        return sum(t.elapsed_ms for t in self.timings)

    @property
    def included_chunks(self) -> int:
        return sum(1 for c in self.candidates if c.included)

    @property
    def total_candidates(self) -> int:
        return len(self.candidates)


@dataclass(frozen=True)
class EmbeddingProgress:
    """Progress event emitted by batch embedding generation."""

    processed: int
    total: int
    chunk_id: int | None = None
    done: bool = False
