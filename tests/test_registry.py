"""Tests for hybridrag.registry module — provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hybridrag.exceptions import PluginError
from hybridrag.registry import ProviderRegistry

if TYPE_CHECKING:
    from hybridrag.config import HybridRagConfig


class TestProviderRegistry:
    def test_register_and_create(self):
        registry = ProviderRegistry()
        registry.register("embedding", "mock", lambda cfg: "mock_embedder")
        result = registry.create("embedding", "mock", _mock_config())
        assert result == "mock_embedder"

    def test_create_unknown_category_raises(self):
        registry = ProviderRegistry()
        with pytest.raises(PluginError, match="Unknown provider category"):
            registry.create("nonexistent", "mock", _mock_config())

    def test_create_unknown_name_raises(self):
        registry = ProviderRegistry()
        registry.register("embedding", "ollama", lambda cfg: "ollama_embedder")
        with pytest.raises(PluginError, match="Unknown provider 'openai'"):
            registry.create("embedding", "openai", _mock_config())

    def test_duplicate_register_raises(self):
        registry = ProviderRegistry()
        registry.register("embedding", "ollama", lambda cfg: "first")
        with pytest.raises(PluginError, match="already registered"):
            registry.register("embedding", "ollama", lambda cfg: "second")

    def test_list_providers_empty_category(self):
        registry = ProviderRegistry()
        assert registry.list_providers("nonexistent") == []

    def test_list_providers_returns_sorted(self):
        registry = ProviderRegistry()
        registry.register("embedding", "openai", lambda cfg: "openai")
        registry.register("embedding", "ollama", lambda cfg: "ollama")
        registry.register("embedding", "azure", lambda cfg: "azure")
        assert registry.list_providers("embedding") == ["azure", "ollama", "openai"]

    def test_has_provider(self):
        registry = ProviderRegistry()
        registry.register("lexical", "fts5", lambda cfg, *, store: store)
        assert registry.has_provider("lexical", "fts5") is True
        assert registry.has_provider("lexical", "bm25") is False
        assert registry.has_provider("nonexistent", "fts5") is False

    def test_factory_receives_config(self):
        registry = ProviderRegistry()
        received_configs: list[HybridRagConfig] = []

        def factory(cfg: HybridRagConfig) -> str:
            received_configs.append(cfg)
            return "created"

        registry.register("embedding", "custom", factory)
        config = _mock_config()
        registry.create("embedding", "custom", config)

        assert received_configs == [config]
        assert received_configs[0] is config

    def test_kwargs_forwarded_to_factory(self):
        registry = ProviderRegistry()
        registry.register("lexical", "echo", lambda cfg, *, store: ("index", store))
        sentinel = object()
        assert registry.create("lexical", "echo", _mock_config(), store=sentinel) == (
            "index",
            sentinel,
        )


class TestLazyAutoDiscovery:
    """Registry auto-discovers built-in providers on first lookup."""

    def test_default_registry_has_embedding_providers(self):
        from hybridrag.registry import default_registry

        assert default_registry.has_provider("embedding", "chromadb")
        assert default_registry.has_provider("embedding", "ollama")
        assert default_registry.has_provider("embedding", "openai")

    def test_default_registry_has_lexical_backends(self):
        from hybridrag.registry import default_registry

        assert default_registry.list_providers("lexical") == ["bm25", "fts5"]

    def test_fts5_requires_lexical_store(self):
        from hybridrag.registry import default_registry

        with pytest.raises(PluginError, match="no built-in full-text index"):
            default_registry.create("lexical", "fts5", _mock_config(), store=object())

    def test_auto_discover_false_does_not_import(self):
        registry = ProviderRegistry(auto_discover=False)
        with pytest.raises(PluginError, match="Unknown provider category"):
            registry.create("embedding", "chromadb", _mock_config())


def _mock_config() -> HybridRagConfig:
    from hybridrag.config import HybridRagConfig

    return HybridRagConfig()
