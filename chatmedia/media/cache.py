"""
Bounded in-memory cache.

Holds small immutable lookups (search query -> watch URL, video id ->
metadata). Owned by a single pipeline instance; evicts oldest entries
first once the size cap is reached.
"""

from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional

from loguru import logger


class BoundedCache:
    """Кэш с ограничением по количеству записей и вытеснением старейших."""

    def __init__(self, max_entries: int = 128, name: str = "cache"):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.name = name
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable, default: Optional[Any] = None) -> Optional[Any]:
        """Получение значения; порядок вытеснения по чтению не меняется."""
        if key in self._entries:
            self._hits += 1
            return self._entries[key]
        self._misses += 1
        return default

    def set(self, key: Hashable, value: Any) -> None:
        """Сохранение значения с вытеснением старейших записей."""
        if key in self._entries:
            self._entries[key] = value
            return

        self._entries[key] = value
        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"[{self.name}] Evicted oldest entry: {evicted_key}")

    def pop(self, key: Hashable, default: Optional[Any] = None) -> Optional[Any]:
        return self._entries.pop(key, default)

    def clear(self) -> int:
        """Очистка кэша, возвращает количество удалённых записей."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_statistics(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": (self._hits / total) if total else 0.0,
        }
