"""Reciprocal Rank Fusion (RRF) of vector and keyword rankings.

Vector cosine similarities and keyword relevance scores live in
incomparable ranges, so candidates are fused by rank position only: an
item at 0-based rank ``r`` in a list contributes ``weight / (k + r + 1)``,
and contributions from both lists are summed. A chunk found by both modes
therefore outranks one found by a single mode at the same positions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hybridrag.types import RetrievalCandidate

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = [
    "DEFAULT_RRF_K",
    "fusion_formula",
    "reciprocal_rank_fusion",
    "rrf_contribution",
]

logger = logging.getLogger(__name__)

DEFAULT_RRF_K = 60.0


def rrf_contribution(rank: int, k: float = DEFAULT_RRF_K, weight: float = 1.0) -> float:
    """RRF contribution of the item at 0-based ``rank``."""
    return weight / (k + rank + 1)


def fusion_formula(
    k: float = DEFAULT_RRF_K,
    vector_weight: float = 1.0,
    keyword_weight: float = 1.0,
) -> str:
    """Human-readable description of the fusion used, e.g. ``RRF(k=60)``."""
    formula = f"RRF(k={k:g})"
    if vector_weight != 1.0 or keyword_weight != 1.0:
        formula += f" weights(vector={vector_weight:g}, keyword={keyword_weight:g})"
    return formula


def _ranked(items: Sequence[tuple[int, float]]) -> list[tuple[int, float]]:
    # Stable: equal scores keep the order the backend returned them in
    return sorted(items, key=lambda item: -item[1])


def reciprocal_rank_fusion(
    vector_ranked: Sequence[tuple[int, float]],
    keyword_ranked: Sequence[tuple[int, float]],
    k: float = DEFAULT_RRF_K,
    *,
    vector_weight: float = 1.0,
    keyword_weight: float = 1.0,
) -> dict[int, RetrievalCandidate]:
    """Fuse vector and keyword hits into one candidate per chunk.

    Args:
        vector_ranked: ``(chunk_id, cosine_similarity)`` pairs.
        keyword_ranked: ``(chunk_id, lexical_score)`` pairs, higher is better.
        k: RRF damping constant; larger values flatten rank differences.
        vector_weight: Multiplier on vector contributions.
        keyword_weight: Multiplier on keyword contributions.

    Returns:
        Candidates keyed by chunk id. The raw score of each list is recorded
        on the candidate the first time that list contributes to it.

    Raises:
        ValueError: If ``k`` is not positive.
    """
    if k <= 0:
        raise ValueError(f"RRF k must be > 0, got {k}")

    candidates: dict[int, RetrievalCandidate] = {}

    for rank, (chunk_id, score) in enumerate(_ranked(vector_ranked)):
        candidate = candidates.setdefault(chunk_id, RetrievalCandidate(chunk_id=chunk_id))
        if not candidate.in_vector:
            candidate.vector_score = score
            candidate.in_vector = True
        candidate.fused_score += rrf_contribution(rank, k, vector_weight)

    for rank, (chunk_id, score) in enumerate(_ranked(keyword_ranked)):
        candidate = candidates.setdefault(chunk_id, RetrievalCandidate(chunk_id=chunk_id))
        if not candidate.in_keyword:
            candidate.keyword_score = score
            candidate.in_keyword = True
        candidate.fused_score += rrf_contribution(rank, k, keyword_weight)

    logger.debug(
        "Fused %d vector + %d keyword hits into %d candidates (k=%g)",
        len(vector_ranked),
        len(keyword_ranked),
        len(candidates),
        k,
    )
    return candidates
