"""hybridrag — hybrid vector + keyword retrieval for RAG pipelines."""

__version__ = "0.1.0"
