"""Score functions for the two retrieval modes.

Pure functions, no I/O:
- ``cosine_similarity`` compares dense embedding vectors
- ``lexical_score`` normalizes a keyword backend's raw score
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["cosine_similarity", "lexical_score"]

logger = logging.getLogger(__name__)

# Norms at or below this are treated as zero vectors.
_NORM_EPSILON = 1e-12


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Vectors of different length score 0.0 rather than raising, as does a
    zero vector on either side. The result is nominally in [-1, 1];
    normalized embeddings mostly land in [0, 1].
    """
    if len(a) != len(b):
        logger.debug("Dimension mismatch in cosine_similarity: %d vs %d", len(a), len(b))
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b, strict=True):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denom <= _NORM_EPSILON:
        return 0.0
    return dot / denom


def lexical_score(raw_score: float) -> float:
    """Map a keyword backend score to "higher is better, non-negative".

    SQLite FTS5 ``bm25()`` reports more-negative-is-better; taking the
    absolute value aligns it with positive-score backends such as rank_bm25.
    """
    return abs(raw_score)
