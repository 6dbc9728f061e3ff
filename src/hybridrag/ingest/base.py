"""Abstract base class for document loaders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from hybridrag.types import LoadedText

__all__ = ["BaseLoader"]


class BaseLoader(ABC):
    """Base class for document loaders.

    Subclasses must implement ``load`` and ``supported_extensions``.
    The ``can_load`` helper checks file extension membership.
    """

    @abstractmethod
    def load(self, path: Path) -> LoadedText:
        """Read a document file into plain text.

        Raises:
            ParseError: If the document cannot be read.
        """

    @abstractmethod
    def supported_extensions(self) -> frozenset[str]:
        """Return the lowercase file extensions (with leading dot) this loader handles."""

    def can_load(self, path: Path) -> bool:
        """Check whether this loader can handle the given file."""
        return path.suffix.lower() in self.supported_extensions()
