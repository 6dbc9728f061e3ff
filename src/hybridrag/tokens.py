"""Token counters used to annotate trace candidates.

Two strategies:
- ``EstimationTokenCounter``: character-ratio estimate, no model download
- ``TiktokenCounter``: exact ``cl100k_base`` counts via tiktoken
"""

from __future__ import annotations

import functools
import logging
import math
from typing import Protocol

import tiktoken

from hybridrag.exceptions import ConfigError

__all__ = [
    "EstimationTokenCounter",
    "TiktokenCounter",
    "TokenCounter",
    "make_token_counter",
]

logger = logging.getLogger(__name__)


class TokenCounter(Protocol):
    """Anything that can count tokens in a string."""

    @property
    def is_approximate(self) -> bool: ...

    @property
    def name(self) -> str: ...

    def count(self, text: str) -> int: ...


class EstimationTokenCounter:
    """Estimate tokens from character count.

    Around 4 chars/token for English and 3 for Polish or German; 3.5 sits
    between them.
    """

    def __init__(self, chars_per_token: float = 3.5) -> None:
        if chars_per_token <= 0:
            raise ConfigError(f"chars_per_token must be > 0, got {chars_per_token}")
        self._chars_per_token = chars_per_token

    @property
    def is_approximate(self) -> bool:
        return True

    @property
    def name(self) -> str:
        return f"estimate (~{self._chars_per_token} chars/token)"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._chars_per_token)


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    """Get the tiktoken encoding, lazily initialized and thread-safe."""
    return tiktoken.get_encoding("cl100k_base")


class TiktokenCounter:
    """Exact token counts with the ``cl100k_base`` encoding."""

    @property
    def is_approximate(self) -> bool:
        return False

    @property
    def name(self) -> str:
        return "tiktoken cl100k_base"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(_get_encoding().encode(text))


def make_token_counter(name: str) -> TokenCounter:
    """Build the counter selected by ``[trace] tokenizer``."""
    if name == "estimate":
        return EstimationTokenCounter()
    if name == "tiktoken":
        return TiktokenCounter()
    raise ConfigError(f"Unknown tokenizer {name!r}. Available: ['estimate', 'tiktoken']")
