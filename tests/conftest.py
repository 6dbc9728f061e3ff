"""Shared fixtures for hybridrag tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hybridrag.config import HybridRagConfig, save_config
from hybridrag.project import CONFIG_FILE, RAG_DIR
from hybridrag.store.sqlite import SqliteStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A temporary directory simulating a project root."""
    return tmp_path


@pytest.fixture
def initialized_project(tmp_path: Path) -> Path:
    """A temporary project with .rag/ already initialized."""
    rag = tmp_path / RAG_DIR
    rag.mkdir()

    config = HybridRagConfig()
    config.project.name = "test-project"
    save_config(config, rag / CONFIG_FILE)
    SqliteStore(rag / config.store.db_file)

    return tmp_path


@pytest.fixture
def store(tmp_path: Path) -> SqliteStore:
    """An empty SQLite store in a temporary directory."""
    return SqliteStore(tmp_path / "rag.sqlite")


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """A small markdown document with two paragraphs."""
    f = tmp_path / "notes.md"
    f.write_text(
        "Reciprocal rank fusion merges ranked lists without score calibration.\n\n"
        "Cosine similarity compares dense embedding vectors of equal length.",
        encoding="utf-8",
    )
    return f
