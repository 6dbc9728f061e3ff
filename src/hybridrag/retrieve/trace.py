"""Flight recorder for the retrieval pipeline.

Captures stage timings in the order the stages actually ran and every
candidate considered before top-K truncation. The recorder is write-only
from the engine's side: nothing in it feeds back into ranking.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from hybridrag.types import PipelineTrace, RetrievalMode, StageTiming, TraceCandidate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

__all__ = [
    "STAGE_BUILD_TRACE",
    "STAGE_EMBED_QUERY",
    "STAGE_KEYWORD_SEARCH",
    "STAGE_LOAD_CHUNKS",
    "STAGE_MERGE_RERANK",
    "STAGE_VECTOR_SEARCH",
    "TraceRecorder",
]

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

STAGE_EMBED_QUERY = "EmbedQuery"
STAGE_LOAD_CHUNKS = "LoadChunks"
STAGE_VECTOR_SEARCH = "VectorSearch"
STAGE_KEYWORD_SEARCH = "KeywordSearch"
STAGE_MERGE_RERANK = "Merge+Rerank"
STAGE_BUILD_TRACE = "BuildTrace"

_DEFAULT_PREVIEW_CHARS = 200


class TraceRecorder:
    """Accumulates timings and candidates for one query.

    Usage::

        recorder = TraceRecorder(query, RetrievalMode.HYBRID, "RRF(k=60)")
        with recorder.stage("EmbedQuery"):
            vector = embedder.embed_query(query)
        trace = recorder.build()
    """

    def __init__(
        self,
        query: str,
        mode: RetrievalMode,
        fusion_formula: str,
        preview_chars: int = _DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self._query = query
        self._mode = mode
        self._fusion_formula = fusion_formula
        self._preview_chars = preview_chars
        self._timings: list[StageTiming] = []
        self._candidates: list[TraceCandidate] = []

    @property
    def timings(self) -> tuple[StageTiming, ...]:
        return tuple(self._timings)

    def elapsed_ms(self, name: str) -> float:
        """Total recorded time for a stage name (0.0 if it never ran)."""
        return sum(t.elapsed_ms for t in self._timings if t.name == name)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block and append it to the timing list.

        The timing is recorded even when the block raises, so a failed
        stage still shows up in the trace.
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000.0
            self._timings.append(StageTiming(name=name, elapsed_ms=elapsed))
            logger.debug("Stage %s took %.2fms", name, elapsed)

    def measure(self, name: str, fn: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
        """Call ``fn`` inside :meth:`stage` and return its result."""
        with self.stage(name):
            return fn(*args, **kwargs)

    def add_candidate(
        self,
        *,
        rank: int,
        chunk_id: int,
        source_name: str,
        chunk_index: int | None,
        vector_score: float,
        keyword_score: float,
        final_score: float,
        token_count: int,
        included: bool,
        content: str = "",
        matched_terms: tuple[str, ...] = (),
    ) -> None:
        """Record one evaluated candidate (1-based ``rank``)."""
        self._candidates.append(
            TraceCandidate(
                rank=rank,
                chunk_id=chunk_id,
                source_name=source_name,
                chunk_index=chunk_index,
                vector_score=vector_score,
                keyword_score=keyword_score,
                final_score=final_score,
                token_count=token_count,
                included=included,
                preview=_preview(content, self._preview_chars),
                matched_terms=matched_terms,
            )
        )

    def build(self) -> PipelineTrace:
        """Freeze the recorded data into an immutable trace."""
        return PipelineTrace(
            query=self._query,
            mode=self._mode,
            fusion_formula=self._fusion_formula,
            candidates=tuple(self._candidates),
            timings=tuple(self._timings),
        )


def _preview(content: str, limit: int) -> str:
    text = " ".join(content.split())
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)].rstrip() + "..."
