"""Bounded LRU memoization of (model, prompt) -> generated text."""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from typing import Any

import structlog

logger = structlog.get_logger()


def make_cache_key(model: str, prompt: str) -> str:
    """Deterministic key for a (model, prompt) pair."""
    digest = hashlib.sha256()
    digest.update(model.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(prompt.encode("utf-8"))
    return digest.hexdigest()


class ResponseCache:
    """LRU cache of generated texts shared by every request in the process.

    None of the methods await, so each call runs to completion on the event
    loop without interleaving; concurrent requests never observe a partial
    update. Writes for an existing key replace the value (same key always
    maps to the same logical completion).
    """

    def __init__(self, max_entries: int = 1024) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, model: str, prompt: str) -> str | None:
        key = make_cache_key(model, prompt)
        value = self._entries.get(key)
        if value is None:
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return value

    def set(self, model: str, prompt: str, text: str) -> None:
        key = make_cache_key(model, prompt)
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = text
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("cache_evicted", size=len(self._entries))

    def __contains__(self, item: tuple[str, str]) -> bool:
        model, prompt = item
        return make_cache_key(model, prompt) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": round(self._hits / total, 4) if total else 0.0,
        }
