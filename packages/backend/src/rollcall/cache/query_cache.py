"""Query cache — process-wide store of dashboard query results.

Learn: Results are keyed by tuples like ("worker-today-attendance",
worker_id, "2026-10-19"). The first element is the cache-key prefix from
realtime.query_keys; the rest are parameters. Invalidation works on key
prefixes, so invalidate("worker-today-attendance") drops every worker and
every date in one call.

Invalidation marks entries stale instead of deleting them, and bumps a
per-key generation counter. A fetch that started before the invalidation
notices the generation moved when it finishes, throws its result away and
computes again. That is how "anything in flight when the table changed is
recomputed before it is served" holds without cancelling tasks.

Concurrent fetches of the same key share one computation.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional, Union

import structlog

logger = structlog.get_logger()

QueryKey = tuple[Hashable, ...]
KeyPrefix = Union[str, QueryKey]


def as_prefix(prefix: KeyPrefix) -> QueryKey:
    return (prefix,) if isinstance(prefix, str) else tuple(prefix)


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    stale: bool = False


class QueryCache:
    """Keyed async result cache with prefix invalidation."""

    def __init__(
        self,
        stale_after: Optional[float] = None,
        max_retries: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_after = stale_after
        self.max_retries = max_retries
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Task] = {}
        self._generations: dict[QueryKey, int] = {}
        self.stats = {"hits": 0, "misses": 0, "invalidations": 0, "discarded": 0}

    # ─── Reads ────────────────────────────────────────────

    async def fetch(self, key: QueryKey, compute: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for `key`, computing it if missing or stale."""
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is not None and not self._is_stale(entry):
            self.stats["hits"] += 1
            return entry.value

        self.stats["misses"] += 1
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._compute(key, compute))
            self._inflight[key] = task
            task.add_done_callback(lambda t, key=key: self._clear_inflight(key, t))
        return await asyncio.shield(task)

    async def _compute(self, key: QueryKey, compute: Callable[[], Awaitable[Any]]) -> Any:
        value = None
        for _ in range(self.max_retries):
            generation = self._generations.get(key, 0)
            value = await compute()
            if self._generations.get(key, 0) == generation:
                self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
                return value
            # Invalidated while computing; the result may predate the change.
            self.stats["discarded"] += 1
            logger.debug("query_cache.discarded", key=key)
        logger.warning("query_cache.unsettled", key=key, attempts=self.max_retries)
        return value

    def _clear_inflight(self, key: QueryKey, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _is_stale(self, entry: CacheEntry) -> bool:
        if entry.stale:
            return True
        if self.stale_after is None:
            return False
        return self._clock() - entry.fetched_at >= self.stale_after

    def peek(self, key: QueryKey) -> Optional[Any]:
        """Return the cached value without computing (stale values included)."""
        entry = self._entries.get(tuple(key))
        return entry.value if entry else None

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(tuple(key))
        return entry is None or self._is_stale(entry)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    # ─── Invalidation ─────────────────────────────────────

    def invalidate(self, prefix: KeyPrefix) -> int:
        """Mark every key under `prefix` stale. Returns how many keys matched.

        Unused prefixes match nothing and return 0.
        """
        prefix = as_prefix(prefix)
        matched = {key for key in self._entries if key_matches(key, prefix)}
        matched.update(key for key in self._inflight if key_matches(key, prefix))

        for key in matched:
            self._generations[key] = self._generations.get(key, 0) + 1
            entry = self._entries.get(key)
            if entry is not None:
                entry.stale = True

        self.stats["invalidations"] += 1
        logger.debug("query_cache.invalidated", prefix=prefix, keys=len(matched))
        return len(matched)

    def clear(self) -> None:
        for key in set(self._entries) | set(self._inflight):
            self._generations[key] = self._generations.get(key, 0) + 1
        self._entries.clear()

    def get_stats(self) -> dict:
        return {
            **self.stats,
            "entries": len(self._entries),
            "stale_entries": sum(1 for e in self._entries.values() if self._is_stale(e)),
            "inflight": len(self._inflight),
        }
