"""Configuration system for hybridrag.

Manages project configuration via .rag/config.toml with typed dataclasses
and sensible defaults for all values.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import tomli_w

from hybridrag.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "ChunkConfig",
    "EmbeddingConfig",
    "HybridRagConfig",
    "ProjectConfig",
    "RetrievalConfig",
    "StoreConfig",
    "TraceConfig",
    "default_config",
    "load_config",
    "save_config",
]

logger = logging.getLogger(__name__)

_SECTIONS = ("project", "chunk", "embedding", "store", "retrieval", "trace")


@dataclass
class ProjectConfig:
    """[project] section."""

    name: str = ""
    description: str = ""


@dataclass
class ChunkConfig:
    """[chunk] section. Sizes are in characters."""

    max_chars: int = 1500
    overlap_chars: int = 200
    min_chars: int = 100


@dataclass
class EmbeddingConfig:
    """[embedding] section."""

    provider: str = "ollama"
    model: str = "nomic-embed-text"
    api_key_env: str = ""
    base_url: str = ""
    batch_size: int = 32
    query_prefix: str = ""
    passage_prefix: str = ""


@dataclass
class StoreConfig:
    """[store] section."""

    db_file: str = "rag.sqlite"


@dataclass
class RetrievalConfig:
    """[retrieval] section."""

    mode: str = "hybrid"
    top_k: int = 5
    min_similarity: float = 0.7
    rrf_k: float = 60.0
    hybrid_balance: float = 0.5
    lexical_backend: str = "fts5"


@dataclass
class TraceConfig:
    """[trace] section."""

    tokenizer: str = "estimate"
    preview_chars: int = 200


@dataclass
class HybridRagConfig:
    """Root configuration combining all sections."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    chunk: ChunkConfig = field(default_factory=ChunkConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)


def default_config() -> HybridRagConfig:
    """Return a config with all default values."""
    return HybridRagConfig()


def _config_to_dict(config: HybridRagConfig) -> dict[str, object]:
    """Convert HybridRagConfig to a nested dict suitable for TOML serialization."""
    return {name: dict(vars(getattr(config, name))) for name in _SECTIONS}


def save_config(config: HybridRagConfig, path: Path) -> None:
    """Save configuration to a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _config_to_dict(config)
    try:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
        logger.info("Saved config to %s", path)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e


def _load_section(cls: type[_T], data: object) -> _T:
    """Load a dataclass section from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        raise ConfigError(f"Config section for {cls.__name__} must be a table")
    known_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered = {k: v for k, v in data.items() if k in known_fields}
    return cls(**filtered)


def load_config(path: Path) -> HybridRagConfig:
    """Load configuration from a TOML file.

    Missing sections or keys get default values.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    config = HybridRagConfig()
    section_map: dict[str, type] = {
        "project": ProjectConfig,
        "chunk": ChunkConfig,
        "embedding": EmbeddingConfig,
        "store": StoreConfig,
        "retrieval": RetrievalConfig,
        "trace": TraceConfig,
    }

    for name, cls in section_map.items():
        if name in data:
            setattr(config, name, _load_section(cls, data[name]))

    logger.info("Loaded config from %s", path)
    return config
