"""Retrieval — vector scoring, rank fusion, tracing and the hybrid engine."""

from hybridrag.retrieve.engine import RetrievalEngine, balance_weights, coerce_mode
from hybridrag.retrieve.fusion import DEFAULT_RRF_K, fusion_formula, reciprocal_rank_fusion
from hybridrag.retrieve.scoring import cosine_similarity, lexical_score
from hybridrag.retrieve.trace import TraceRecorder

__all__ = [
    "DEFAULT_RRF_K",
    "RetrievalEngine",
    "TraceRecorder",
    "balance_weights",
    "coerce_mode",
    "cosine_similarity",
    "fusion_formula",
    "lexical_score",
    "reciprocal_rank_fusion",
]
