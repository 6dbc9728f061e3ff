"""Chunk storage and keyword indexes — SQLite/FTS5 and in-memory BM25."""

from hybridrag.exceptions import PluginError
from hybridrag.registry import default_registry
from hybridrag.store.base import (
    BaseChunkStore,
    BaseLexicalIndex,
    decode_embedding,
    encode_embedding,
)
from hybridrag.store.bm25 import BM25Index
from hybridrag.store.sqlite import SqliteStore

__all__ = [
    "BM25Index",
    "BaseChunkStore",
    "BaseLexicalIndex",
    "SqliteStore",
    "decode_embedding",
    "encode_embedding",
]


def _fts5_index(_config: object, *, store: BaseChunkStore) -> BaseLexicalIndex:
    if not isinstance(store, BaseLexicalIndex):
        raise PluginError(f"{type(store).__name__} has no built-in full-text index")
    return store


# Register built-in lexical backends; factories receive the chunk store
default_registry.register("lexical", "fts5", _fts5_index)
default_registry.register("lexical", "bm25", lambda _cfg, *, store: BM25Index.from_store(store))
