"""Custom exception hierarchy for hybridrag."""

__all__ = [
    "ChunkError",
    "ConfigError",
    "EmbeddingError",
    "HybridRagError",
    "InvalidParameterError",
    "InvalidQueryError",
    "InvalidTopKError",
    "LexicalBackendError",
    "MalformedEmbeddingError",
    "ParseError",
    "PipelineError",
    "PluginError",
    "ProjectError",
    "RetrievalCancelledError",
    "RetrievalError",
    "StoreError",
]


class HybridRagError(Exception):
    """Base exception for all hybridrag errors."""


class ConfigError(HybridRagError):
    """Raised when configuration loading or validation fails."""


class ProjectError(HybridRagError):
    """Raised when project initialization or discovery fails."""


class ParseError(HybridRagError):
    """Raised when a source file cannot be read as text."""


class ChunkError(HybridRagError):
    """Raised when chunking operations fail."""


class EmbeddingError(HybridRagError):
    """Raised when embedding generation fails."""


class StoreError(HybridRagError):
    """Raised when chunk store operations fail."""


class LexicalBackendError(HybridRagError):
    """Raised when the keyword search backend fails."""


class MalformedEmbeddingError(HybridRagError):
    """Raised when a stored embedding cannot be deserialized."""


class PipelineError(HybridRagError):
    """Raised when ingestion orchestration fails."""


class PluginError(HybridRagError):
    """Raised when plugin loading or registration fails."""


class RetrievalError(HybridRagError):
    """Base class for retrieval call failures."""


class InvalidQueryError(RetrievalError):
    """Raised when the query is empty or whitespace-only."""


class InvalidTopKError(RetrievalError):
    """Raised when top_k is not a positive integer."""


class InvalidParameterError(RetrievalError):
    """Raised when a retrieval parameter is out of range."""


class RetrievalCancelledError(RetrievalError):
    """Raised when the caller cancels a query between pipeline stages."""
