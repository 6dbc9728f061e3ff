"""Tests for hybridrag.ingest.text — TextLoader."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hybridrag.exceptions import ParseError
from hybridrag.ingest.base import BaseLoader
from hybridrag.ingest.text import TEXT_EXTENSIONS, TextLoader
from hybridrag.types import LoadedText

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def loader() -> TextLoader:
    return TextLoader()


class TestLoad:
    def test_returns_loaded_text(self, loader: TextLoader, sample_file: Path) -> None:
        result = loader.load(sample_file)
        assert isinstance(result, LoadedText)
        assert result.file_name == "notes.md"
        assert result.source_path == str(sample_file)
        assert result.content.startswith("Reciprocal rank fusion")

    def test_content_kept_verbatim(self, loader: TextLoader, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text('{"key":   "value"}\n\n\n\n', encoding="utf-8")
        assert loader.load(path).content == '{"key":   "value"}\n\n\n\n'

    def test_strips_bom(self, loader: TextLoader, tmp_path: Path) -> None:
        path = tmp_path / "bom.txt"
        path.write_bytes(b"\xef\xbb\xbfHello")
        assert loader.load(path).content == "Hello"

    def test_invalid_utf8_replaced(self, loader: TextLoader, tmp_path: Path) -> None:
        path = tmp_path / "latin.txt"
        path.write_bytes(b"caf\xe9 au lait")
        assert loader.load(path).content == "caf\ufffd au lait"

    @pytest.mark.parametrize("suffix", [".MD", ".Markdown", ".htm", ".csv", ".xml"])
    def test_supported_extensions(self, loader: TextLoader, tmp_path: Path, suffix: str) -> None:
        path = tmp_path / f"doc{suffix}"
        path.write_text("content", encoding="utf-8")
        assert loader.load(path).content == "content"


class TestErrors:
    def test_missing_file(self, loader: TextLoader, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="not found"):
            loader.load(tmp_path / "missing.txt")

    def test_directory(self, loader: TextLoader, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="Not a file"):
            loader.load(tmp_path)

    def test_unsupported_extension(self, loader: TextLoader, tmp_path: Path) -> None:
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4")
        with pytest.raises(ParseError, match="Unsupported file type"):
            loader.load(path)

    def test_too_large(self, tmp_path: Path) -> None:
        path = tmp_path / "big.txt"
        path.write_text("x" * 101, encoding="utf-8")
        with pytest.raises(ParseError, match="exceeds maximum size"):
            TextLoader(max_file_size=100).load(path)


class TestLoaderContract:
    def test_is_base_loader(self, loader: TextLoader) -> None:
        assert isinstance(loader, BaseLoader)
        assert loader.supported_extensions() == TEXT_EXTENSIONS

    def test_can_load(self, loader: TextLoader, tmp_path: Path) -> None:
        assert loader.can_load(tmp_path / "a.TXT")
        assert not loader.can_load(tmp_path / "a.docx")
