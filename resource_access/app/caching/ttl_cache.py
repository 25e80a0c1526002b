"""
Bounded in-memory TTL cache used by resource clients and async fetches.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterator, Optional, TypeVar

from shared.logging import get_logger


V = TypeVar("V")

DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry(Generic[V]):
    """A stored value and its validity window."""

    value: V
    stored_at: float
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now <= self.expires_at


class TTLCache(Generic[V]):
    """Key/value store with per-entry expiry.

    Expiry is checked lazily on access; there is no background timer. When
    the store is full, ``set`` purges expired entries only. Valid entries are
    never evicted to make room, so the size can grow past ``max_size`` when
    nothing has expired yet.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE, clock: Callable[[], float] = time.time):
        self.max_size = max_size
        self._clock = clock
        self._store: Dict[str, CacheEntry[V]] = {}
        self.logger = get_logger("resource_access.cache")

    def get(self, key: str) -> Optional[V]:
        entry = self._store.get(key)
        if entry is None:
            return None

        if not entry.is_valid(self._clock()):
            del self._store[key]
            return None

        return entry.value

    def set(self, key: str, value: V, ttl: float) -> None:
        if len(self._store) >= self.max_size:
            self._purge_expired()

        now = self._clock()
        self._store[key] = CacheEntry(value=value, stored_at=now, expires_at=now + ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        """Drop every key in a namespace; returns how many were removed."""
        doomed = [key for key in self._store if key.startswith(prefix)]
        for key in doomed:
            del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._store), "max_size": self.max_size}

    def keys(self) -> Iterator[str]:
        return iter(list(self._store))

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._store.items() if not entry.is_valid(now)]
        for key in expired:
            del self._store[key]

        if expired:
            self.logger.debug("Purged expired cache entries", purged=len(expired), size=len(self._store))
        elif len(self._store) >= self.max_size:
            self.logger.warning(
                "Cache at capacity with no expired entries",
                size=len(self._store),
                max_size=self.max_size
            )

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: Any) -> bool:
        entry = self._store.get(key)
        return entry is not None and entry.is_valid(self._clock())
