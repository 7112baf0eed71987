"""Bounded memo maps shared across a run."""

from __future__ import annotations

import logging
from typing import Dict, Generic, Iterator, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

_MISSING = object()


class BoundedCache(Generic[K, V]):
    """Dict with a size ceiling and no eviction.

    Once full, new keys are not stored; existing entries are never evicted
    or overwritten. Call :meth:`clear` between runs when needed.
    """

    def __init__(self, max_size: int = 1024, name: str = "cache") -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.name = name
        self._data: Dict[K, V] = {}
        self._warned = False

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[K]:
        return iter(self._data)

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        return self._data.get(key, default)

    def lookup(self, key: K) -> object:
        """Stored value, or the module sentinel when absent (values may be ``None``)."""
        return self._data.get(key, _MISSING)

    def put(self, key: K, value: V) -> bool:
        """Store ``value``; returns ``False`` if the key exists or the cache is full."""
        if key in self._data:
            return False
        if len(self._data) >= self.max_size:
            if not self._warned:
                LOGGER.warning("%s is full (%d entries); not caching further keys", self.name, self.max_size)
                self._warned = True
            return False
        self._data[key] = value
        return True

    def clear(self) -> None:
        self._data.clear()
        self._warned = False


def is_missing(value: object) -> bool:
    return value is _MISSING


URL_VALIDITY_CACHE: BoundedCache[str, bool] = BoundedCache(max_size=4096, name="url-validity")
OFFICIAL_URL_CACHE: BoundedCache[str, Optional[str]] = BoundedCache(
    max_size=4096, name="official-url"
)
