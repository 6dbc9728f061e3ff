"""Project manager for hybridrag.

Handles project initialization, status reporting, and project root discovery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from hybridrag.config import HybridRagConfig, default_config, load_config, save_config
from hybridrag.exceptions import ProjectError
from hybridrag.store.sqlite import SqliteStore

__all__ = [
    "CONFIG_FILE",
    "RAG_DIR",
    "ProjectManager",
    "ProjectStatus",
]

logger = logging.getLogger(__name__)

RAG_DIR = ".rag"
CONFIG_FILE = "config.toml"


@dataclass
class ProjectStatus:
    """Summary of the current project state."""

    initialized: bool
    root: Path
    document_count: int
    chunk_count: int
    embedded_count: int
    config: HybridRagConfig | None


class ProjectManager:
    """Manages the ``.rag/`` project directory: config and chunk database."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or Path.cwd()

    @property
    def rag_dir(self) -> Path:
        return self.root / RAG_DIR

    @property
    def config_path(self) -> Path:
        return self.rag_dir / CONFIG_FILE

    @property
    def is_initialized(self) -> bool:
        return self.rag_dir.is_dir() and self.config_path.exists()

    def db_path(self, config: HybridRagConfig) -> Path:
        return self.rag_dir / config.store.db_file

    def init(self, name: str = "") -> Path:
        """Initialize a new project.

        Creates ``.rag/``, a default config and an empty database. Safe to
        call on an already-initialized project (idempotent).

        Returns the ``.rag/`` directory path.
        """
        self.rag_dir.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            config = load_config(self.config_path)
            logger.info("Existing config found at %s", self.config_path)
        else:
            config = default_config()

        if name:
            config.project.name = name
        elif not config.project.name:
            config.project.name = self.root.name

        save_config(config, self.config_path)
        SqliteStore(self.db_path(config))

        logger.info("Initialized hybridrag project at %s", self.rag_dir)
        return self.rag_dir

    def load(self) -> tuple[HybridRagConfig, SqliteStore]:
        """Load the project config and open its store.

        Raises:
            ProjectError: If the project is not initialized.
            ConfigError: If the config file is invalid.
        """
        if not self.is_initialized:
            raise ProjectError(f"No hybridrag project at {self.root}. Run 'hybridrag init' first.")
        config = load_config(self.config_path)
        return config, SqliteStore(self.db_path(config))

    def status(self) -> ProjectStatus:
        """Get current project status."""
        if not self.is_initialized:
            return ProjectStatus(
                initialized=False,
                root=self.root,
                document_count=0,
                chunk_count=0,
                embedded_count=0,
                config=None,
            )

        config, store = self.load()
        return ProjectStatus(
            initialized=True,
            root=self.root,
            document_count=store.count_documents(),
            chunk_count=store.count(),
            embedded_count=store.count_embedded(),
            config=config,
        )

    @staticmethod
    def find_project_root(start: Path | None = None) -> Path | None:
        """Walk up from start directory to find a .rag/ directory.

        Returns the project root (parent of .rag/) or None if not found.
        """
        current = (start or Path.cwd()).resolve()
        while True:
            if (current / RAG_DIR).is_dir():
                return current
            parent = current.parent
            if parent == current:
                return None
            current = parent
