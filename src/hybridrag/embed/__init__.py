"""Embedding providers — abstract interface and concrete backends."""

from hybridrag.embed.base import BaseEmbedder
from hybridrag.embed.chromadb_embed import ChromaDBEmbedder
from hybridrag.embed.ollama import OllamaEmbedder
from hybridrag.embed.openai_compat import OpenAICompatEmbedder
from hybridrag.registry import default_registry

__all__ = ["BaseEmbedder", "ChromaDBEmbedder", "OllamaEmbedder", "OpenAICompatEmbedder"]

# Register built-in embedding providers
default_registry.register("embedding", "ollama", lambda cfg: OllamaEmbedder(cfg))
default_registry.register("embedding", "openai", lambda cfg: OpenAICompatEmbedder(cfg))
default_registry.register("embedding", "chromadb", lambda cfg: ChromaDBEmbedder(cfg))
