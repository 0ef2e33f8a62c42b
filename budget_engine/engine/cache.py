"""Keyed query cache with staleness, invalidation and change notification"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from budget_engine.config import settings
from budget_engine.engine.keys import Key, matches
from budget_engine.infrastructure.observability.metrics import cache_lookup_counter

logger = logging.getLogger(__name__)

Listener = Callable[[Key, "CacheEntry"], None]


class QueryStatus(str, Enum):
    IDLE = "idle"  # never fetched
    PENDING = "pending"  # first fetch in flight
    RESOLVED = "resolved"  # fetched at least once, possibly empty
    UNAVAILABLE = "unavailable"  # last fetch failed


@dataclass
class CacheEntry:
    """One cached query result and its fetch bookkeeping"""

    key: Key
    status: QueryStatus = QueryStatus.IDLE
    data: Any = None
    error: Optional[BaseException] = None
    updated_at: float = 0.0  # 0 means stale / never fetched
    accessed_at: float = 0.0
    generation: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    task_generation: int = -1

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done() and self.task_generation == self.generation

    @property
    def is_pending(self) -> bool:
        """No settled answer is available yet, or a newer one is on its way"""
        return self.status in (QueryStatus.IDLE, QueryStatus.PENDING) or self.is_fetching

    @property
    def is_resolved(self) -> bool:
        return self.status is QueryStatus.RESOLVED


class QueryCache:
    """
    Process-wide store mapping key tuples to versioned query results.

    Concurrent fetches of one key share a single task. Every invalidation,
    cancellation or direct write bumps the entry's generation; a fetch that
    completes under an older generation is discarded so a late response
    cannot overwrite newer data.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        stale_seconds: float | None = None,
        gc_seconds: float | None = None,
    ):
        self.clock = clock
        self.stale_seconds = stale_seconds if stale_seconds is not None else settings.records_stale_seconds
        self.gc_seconds = gc_seconds if gc_seconds is not None else settings.cache_gc_seconds
        self._entries: Dict[Key, CacheEntry] = {}
        self._listeners: List[Tuple[Key, Listener]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, key: Key) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def peek(self, key: Key) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def get_data(self, key: Key) -> Any:
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def set_data(self, key: Key, data: Any) -> CacheEntry:
        """Write a value directly, superseding any fetch in flight"""
        entry = self.entry(key)
        entry.generation += 1
        entry.data = data
        entry.error = None
        entry.status = QueryStatus.RESOLVED
        entry.updated_at = self.clock()
        self._notify(entry)
        return entry

    def is_fresh(self, entry: CacheEntry, stale_seconds: float | None = None) -> bool:
        if entry.status is not QueryStatus.RESOLVED or entry.updated_at == 0.0:
            return False
        window = self.stale_seconds if stale_seconds is None else stale_seconds
        return self.clock() - entry.updated_at < window

    async def fetch(
        self,
        key: Key,
        fn: Callable[[], Awaitable[Any]],
        stale_seconds: float | None = None,
    ) -> CacheEntry:
        """
        Return the entry for `key`, running `fn` when it is missing or stale.

        Fetch errors do not propagate: they leave the entry UNAVAILABLE with
        the exception on `entry.error`, unless an older value is still held.
        """
        entry = self.entry(key)
        entry.accessed_at = self.clock()

        if self.is_fresh(entry, stale_seconds):
            cache_lookup_counter.labels(result="hit").inc()
            return entry
        cache_lookup_counter.labels(result="miss").inc()

        if not entry.is_fetching:
            if entry.status is QueryStatus.IDLE:
                entry.status = QueryStatus.PENDING
            entry.task_generation = entry.generation
            entry.task = asyncio.ensure_future(self._run(entry, fn, entry.generation))

        task = entry.task
        await asyncio.wait({task})
        return entry

    async def _run(self, entry: CacheEntry, fn: Callable[[], Awaitable[Any]], generation: int) -> None:
        try:
            data = await fn()
        except Exception as e:
            if generation != entry.generation:
                return
            logger.error(f"Query failed: {e}", extra={"key": repr(entry.key)})
            entry.error = e
            if entry.status is not QueryStatus.RESOLVED:
                entry.status = QueryStatus.UNAVAILABLE
            self._notify(entry)
            return

        if generation != entry.generation:
            logger.debug("Discarding superseded query result", extra={"key": repr(entry.key)})
            return

        entry.data = data
        entry.error = None
        entry.status = QueryStatus.RESOLVED
        entry.updated_at = self.clock()
        self._notify(entry)

    def invalidate(self, pattern: Key) -> int:
        """Mark matching entries stale so the next fetch reloads them"""
        count = 0
        for entry in self._matching(pattern):
            entry.generation += 1
            entry.updated_at = 0.0
            count += 1
            self._notify(entry)
        return count

    async def cancel(self, pattern: Key) -> None:
        """Abort fetches in flight for matching entries and drop their results"""
        tasks = []
        for entry in self._matching(pattern):
            if entry.task is not None and not entry.task.done():
                entry.generation += 1
                entry.task.cancel()
                tasks.append(entry.task)
                if entry.status is QueryStatus.PENDING:
                    entry.status = QueryStatus.IDLE
            entry.task = None
        if tasks:
            await asyncio.wait(tasks)

    def remove(self, pattern: Key) -> int:
        """Forget matching entries entirely, cancelling their fetches"""
        doomed = self._matching(pattern)
        for entry in doomed:
            if entry.task is not None and not entry.task.done():
                entry.task.cancel()
            entry.generation += 1
            del self._entries[entry.key]
        return len(doomed)

    def collect_garbage(self) -> int:
        """Evict entries nobody has read within the gc window"""
        now = self.clock()
        expired = [
            entry for entry in self._entries.values()
            if not entry.is_fetching and now - max(entry.accessed_at, entry.updated_at) >= self.gc_seconds
        ]
        for entry in expired:
            del self._entries[entry.key]
        return len(expired)

    def subscribe(self, pattern: Key, listener: Listener) -> Callable[[], None]:
        """Call `listener(key, entry)` whenever a matching entry changes"""
        subscription = (pattern, listener)
        self._listeners.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._listeners:
                self._listeners.remove(subscription)

        return unsubscribe

    def _matching(self, pattern: Key) -> List[CacheEntry]:
        return [entry for key, entry in self._entries.items() if matches(key, pattern)]

    def _notify(self, entry: CacheEntry) -> None:
        for pattern, listener in list(self._listeners):
            if matches(entry.key, pattern):
                listener(entry.key, entry)
