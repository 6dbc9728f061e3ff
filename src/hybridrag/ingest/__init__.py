"""Document loaders."""

from hybridrag.ingest.base import BaseLoader
from hybridrag.ingest.text import MAX_FILE_SIZE, TEXT_EXTENSIONS, TextLoader

__all__ = ["MAX_FILE_SIZE", "TEXT_EXTENSIONS", "BaseLoader", "TextLoader"]
