"""Bounded in-process cache of text embeddings."""

import logging

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """Maps input text to its embedding.

    Holds at most ``max_size`` entries; adding past that drops the oldest one.
    """

    def __init__(self, max_size: int = 1024):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._entries: dict[str, list[float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return text in self._entries

    def get(self, text: str) -> list[float] | None:
        return self._entries.get(text)

    def set(self, text: str, embedding: list[float]) -> None:
        if text not in self._entries and len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Embedding cache full, dropped %r", oldest[:40])
        self._entries[text] = embedding

    def clear(self) -> None:
        self._entries.clear()


_cache: EmbeddingCache | None = None


def get_cache(max_size: int | None = None) -> EmbeddingCache:
    """Get or create the process-wide embedding cache."""
    global _cache
    if _cache is None:
        if max_size is None:
            from vecdex.config import get_config
            max_size = get_config().cache_size
        _cache = EmbeddingCache(max_size)
    return _cache


def reset_cache() -> None:
    """Reset the cache singleton (useful for testing)."""
    global _cache
    _cache = None
