"""Provider registry for hybridrag.

Maps config strings to factory functions that create provider instances.
Example: ``registry.create("embedding", "ollama", config)`` → ``OllamaEmbedder``.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, Any

from hybridrag.exceptions import PluginError

if TYPE_CHECKING:
    from collections.abc import Callable

    from hybridrag.config import HybridRagConfig

__all__ = ["ProviderRegistry", "default_registry"]

logger = logging.getLogger(__name__)

_BUILTIN_MODULES = ("hybridrag.embed", "hybridrag.store")


class ProviderRegistry:
    """Config-driven factory that maps (category, name) → provider instance.

    Categories: ``"embedding"`` (query/passage embedders) and ``"lexical"``
    (keyword search backends). Lexical factories also receive the chunk
    store as a keyword argument.

    When ``auto_discover`` is ``True``, the first lookup triggers a lazy
    import of the built-in provider packages so they register themselves.

    Usage::

        registry = ProviderRegistry()
        registry.register("embedding", "ollama", lambda cfg: OllamaEmbedder(cfg))
        embedder = registry.create("embedding", "ollama", config)
    """

    def __init__(self, *, auto_discover: bool = False) -> None:
        self._factories: dict[str, dict[str, Callable[..., Any]]] = {}
        self._auto_discover = auto_discover
        self._discovered = False

    def register(
        self,
        category: str,
        name: str,
        factory: Callable[..., Any],
    ) -> None:
        """Register a provider factory.

        Args:
            category: Provider kind (e.g. "embedding", "lexical").
            name: Provider name (e.g. "ollama", "fts5").
            factory: Callable accepting ``HybridRagConfig`` (plus any keyword
                arguments passed to :meth:`create`) and returning a provider.

        Raises:
            PluginError: If a provider with the same category+name already exists.
        """
        if category not in self._factories:
            self._factories[category] = {}

        if name in self._factories[category]:
            raise PluginError(f"Provider '{name}' already registered in category '{category}'")

        self._factories[category][name] = factory
        logger.debug("Registered provider %s/%s", category, name)

    def _ensure_discovered(self) -> None:
        """Lazily import built-in provider modules on first use."""
        if self._discovered or not self._auto_discover:
            return
        self._discovered = True
        for module in _BUILTIN_MODULES:
            try:
                importlib.import_module(module)
            except ImportError as e:
                logger.warning("%s not available for auto-discovery: %s", module, e)

    def create(self, category: str, name: str, config: HybridRagConfig, **kwargs: Any) -> Any:
        """Create a provider instance from the registry.

        Args:
            category: Provider kind.
            name: Provider name.
            config: Project configuration passed to the factory.
            **kwargs: Extra collaborators forwarded to the factory.

        Returns:
            Provider instance.

        Raises:
            PluginError: If the category or name is not registered.
        """
        self._ensure_discovered()

        if category not in self._factories:
            raise PluginError(
                f"Unknown provider category '{category}'. Available: {sorted(self._factories)}"
            )

        if name not in self._factories[category]:
            raise PluginError(
                f"Unknown provider '{name}' in category '{category}'. "
                f"Available: {sorted(self._factories[category])}"
            )

        factory = self._factories[category][name]
        logger.info("Creating provider %s/%s", category, name)
        return factory(config, **kwargs)

    def list_providers(self, category: str) -> list[str]:
        """List registered provider names for a category."""
        self._ensure_discovered()
        if category not in self._factories:
            return []
        return sorted(self._factories[category])

    def has_provider(self, category: str, name: str) -> bool:
        """Check whether a provider is registered."""
        self._ensure_discovered()
        return category in self._factories and name in self._factories[category]


default_registry = ProviderRegistry(auto_discover=True)
