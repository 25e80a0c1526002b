"""
Hierarchical query cache for the CRUD hook factory.

Entries are keyed by ``QueryKey(root_key, operation, params)``. Mutations
mark whole root-key namespaces stale instead of deleting them: a stale entry
is still readable through ``peek`` but ``fetch`` refetches it.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional

from shared.logging import get_logger


def stable_serialize(value: Any) -> str:
    """Canonical JSON with sorted keys.

    ``None`` and empty values are kept, so ``{"q": None}`` and ``{}`` produce
    different keys.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


class QueryKey(NamedTuple):
    root_key: str
    operation: str
    params: str


def make_query_key(root_key: str, operation: str, params: Any = None) -> QueryKey:
    return QueryKey(root_key, operation, stable_serialize(params))


@dataclass
class QueryEntry:
    value: Any
    updated_at: float
    stale: bool = False


class QueryCache:
    """Query results shared by one or more CRUD hook factories."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[QueryKey, QueryEntry] = {}
        # bumped on invalidate/remove; a fetch that spans a bump stores its result stale
        self._generations: Dict[str, int] = {}
        self.logger = get_logger("resource_access.query_cache")

    def peek(self, key: QueryKey) -> Optional[QueryEntry]:
        return self._entries.get(key)

    def get_data(self, key: QueryKey) -> Any:
        entry = self._entries.get(key)
        return entry.value if entry else None

    def is_fresh(self, key: QueryKey, stale_time: float) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return False
        return self._clock() - entry.updated_at <= stale_time

    def set_data(self, key: QueryKey, value: Any) -> None:
        """Seed an entry with a known-correct value."""
        self._entries[key] = QueryEntry(value=value, updated_at=self._clock())

    def generation(self, root_key: str) -> int:
        return self._generations.get(root_key, 0)

    def _bump(self, root_key: str) -> None:
        self._generations[root_key] = self.generation(root_key) + 1

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(key, None)
        self._bump(key.root_key)

    def invalidate(self, root_keys: Iterable[str], exclude: Iterable[QueryKey] = ()) -> int:
        """Mark every entry under the given root keys stale."""
        roots = set(root_keys)
        skipped = set(exclude)
        for root in roots:
            self._bump(root)
        marked = 0
        for key, entry in self._entries.items():
            if key.root_key in roots and key not in skipped:
                entry.stale = True
                marked += 1
        self.logger.debug("Marked queries stale", root_keys=sorted(roots), marked=marked)
        return marked

    async def fetch(self,
                    key: QueryKey,
                    fetcher: Callable[[bool], Awaitable[Any]],
                    stale_time: float) -> Any:
        """Return a fresh cached value or run ``fetcher`` and store its result.

        ``fetcher`` receives ``True`` when the entry exists but was marked
        stale, so the caller can bypass lower cache tiers.
        """
        if self.is_fresh(key, stale_time):
            return self._entries[key].value

        existing = self._entries.get(key)
        started = self.generation(key.root_key)
        value = await fetcher(existing is not None and existing.stale)

        superseded = self.generation(key.root_key) != started
        if superseded:
            self.logger.debug("Query invalidated while in flight", root_key=key.root_key, operation=key.operation)
        self._entries[key] = QueryEntry(value=value, updated_at=self._clock(), stale=superseded)
        return value

    def keys(self, root_key: Optional[str] = None) -> List[QueryKey]:
        return [key for key in self._entries if root_key is None or key.root_key == root_key]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
