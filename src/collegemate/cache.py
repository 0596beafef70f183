"""Tag-indexed cache with in-flight deduplication and refetch-on-invalidate.

This module provides:
- TagCache.read(): cached load with single-flight per key
- TagCache.invalidate(): tag-based invalidation, refetching live entries
- TagCache.subscribe(): reference-counted interest in a key
- Retention-based eviction of entries nobody is subscribed to
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from collegemate.duration import parse_duration
from collegemate.tags import any_tag_matches
from collegemate.types import CacheStatus, Duration, Loader, Tag


@dataclass(eq=False)
class CacheEntry:
    """One read's result and bookkeeping."""

    key: str
    tags: frozenset[Tag] = frozenset()
    status: CacheStatus = CacheStatus.IDLE
    data: Any = None
    error: BaseException | None = None
    subscriber_count: int = 0
    last_updated: float | None = None  # Unix timestamp, seconds
    _loader: Loader | None = field(default=None, repr=False)
    _task: asyncio.Task[Any] | None = field(default=None, repr=False)
    _refetch_requested: bool = field(default=False, repr=False)
    _evict_handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def is_fresh(self) -> bool:
        return self.status is CacheStatus.FULFILLED


class Subscription:
    """A live interest in one cache key.

    Usage:
        with cache.subscribe(key) as sub:
            data = await sub.read()
    """

    __slots__ = ("_active", "_cache", "_key")

    def __init__(self, cache: TagCache, key: str) -> None:
        self._cache = cache
        self._key = key
        self._active = True

    @property
    def key(self) -> str:
        return self._key

    @property
    def active(self) -> bool:
        return self._active

    async def read(self, *, force_refresh: bool = False) -> Any:
        """Read the subscribed key through its stored loader."""
        return await self._cache.reread(self._key, force_refresh=force_refresh)

    def unsubscribe(self) -> None:
        """Drop this subscription. Safe to call more than once."""
        if self._active:
            self._active = False
            self._cache._release(self._key)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"Subscription({self._key}, {state})"


class TagCache:
    """
    Keyed store of read results, indexed by dependency tags.

    Concurrent reads of one key share a single loader call. Invalidating a
    tag refetches subscribed entries at once and leaves the rest stale until
    their next read.

    Usage:
        cache = TagCache(retention="60s")
        events = await cache.read("events", [Tag("Events")], load_events)
        cache.invalidate([Tag("Events", "42")])
    """

    def __init__(self, *, retention: Duration = "60s") -> None:
        self._retention = parse_duration(retention)
        self._entries: dict[str, CacheEntry] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def retention(self) -> float:
        return self._retention

    def peek(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` without loading anything."""
        return self._entries.get(key)

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def read(
        self,
        key: str,
        tags: Iterable[Tag],
        loader: Loader,
        *,
        force_refresh: bool = False,
    ) -> Any:
        """Return cached data for ``key``, loading it if needed.

        Args:
            key: Cache key
            tags: Tags the result provides
            loader: Async function that fetches the data
            force_refresh: Reload even if a fresh result is cached

        Returns:
            Cached or freshly loaded data

        Raises:
            Whatever ``loader`` raised, for every caller attached to that load
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry
        entry.tags = frozenset(tags)
        entry._loader = loader
        self._cancel_eviction(entry)

        if entry.status is CacheStatus.PENDING and entry._task is not None:
            logger.debug(f"DEDUPE: {key}")
            task = entry._task
        elif entry.status is CacheStatus.FULFILLED and not force_refresh:
            logger.debug(f"HIT: {key}")
            self._schedule_eviction(entry)
            return entry.data
        else:
            logger.debug(f"MISS: {key} ({entry.status.value})")
            task = self._start(entry)

        return await asyncio.shield(task)

    async def reread(self, key: str, *, force_refresh: bool = False) -> Any:
        """Read ``key`` again with the tags and loader it was last read with."""
        entry = self._entries.get(key)
        if entry is None or entry._loader is None:
            raise KeyError(f"No cache entry for {key!r}")
        return await self.read(
            key, entry.tags, entry._loader, force_refresh=force_refresh
        )

    def invalidate(self, tags: Iterable[Tag], *, refetch: bool = True) -> list[str]:
        """Mark every entry matching ``tags`` stale.

        Subscribed entries are reloaded immediately when ``refetch`` is true.
        An entry whose load is in flight reloads once that load finishes, so
        the superseded result is never stored as fresh.

        Returns:
            Keys of the affected entries
        """
        tags = tuple(tags)
        affected: list[str] = []
        for entry in list(self._entries.values()):
            if not any_tag_matches(tags, entry.tags):
                continue
            affected.append(entry.key)

            if entry.status is CacheStatus.PENDING:
                entry._refetch_requested = True
                continue
            if entry.status is CacheStatus.IDLE:
                continue

            entry.status = CacheStatus.STALE
            if refetch and entry.subscriber_count > 0 and entry._loader is not None:
                logger.debug(f"REFETCH: {entry.key}")
                self._start(entry)

        if affected:
            logger.debug(f"Invalidated {tags} -> {len(affected)} entries")
        return affected

    def subscribe(self, key: str) -> Subscription:
        """Register interest in ``key``; the entry is kept and refetched while live."""
        entry = self._entries.get(key)
        if entry is None:
            raise KeyError(f"No cache entry for {key!r}")
        entry.subscriber_count += 1
        self._cancel_eviction(entry)
        return Subscription(self, key)

    def clear(self) -> None:
        """Drop every entry, cancelling in-flight loads and eviction timers."""
        for entry in self._entries.values():
            self._cancel_eviction(entry)
            if entry._task is not None and not entry._task.done():
                entry._task.cancel()
        self._entries.clear()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _start(self, entry: CacheEntry) -> asyncio.Task[Any]:
        entry.status = CacheStatus.PENDING
        entry._refetch_requested = False
        task = asyncio.create_task(self._load(entry))
        entry._task = task
        self._background_tasks.add(task)
        task.add_done_callback(lambda t: self._on_load_done(entry, t))
        return task

    async def _load(self, entry: CacheEntry) -> Any:
        assert entry._loader is not None
        while True:
            try:
                data = await entry._loader()
            except Exception as e:
                if entry._refetch_requested:
                    entry._refetch_requested = False
                    continue
                entry.status = CacheStatus.FAILED
                entry.error = e
                entry.last_updated = time.time()
                raise

            if entry._refetch_requested:
                logger.debug(f"RELOAD: {entry.key} invalidated while loading")
                entry._refetch_requested = False
                continue

            entry.status = CacheStatus.FULFILLED
            entry.data = data
            entry.error = None
            entry.last_updated = time.time()
            return data

    def _on_load_done(self, entry: CacheEntry, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if entry._task is task:
            entry._task = None

        if task.cancelled():
            if entry.status is CacheStatus.PENDING:
                entry.status = (
                    CacheStatus.STALE
                    if entry.last_updated is not None
                    else CacheStatus.IDLE
                )
        else:
            error = task.exception()
            if error is not None and entry.subscriber_count > 0:
                logger.warning(f"Loading {entry.key} failed: {error!r}")

        if self._entries.get(entry.key) is entry:
            self._schedule_eviction(entry)

    def _release(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None or entry.subscriber_count == 0:
            return
        entry.subscriber_count -= 1
        if entry.subscriber_count == 0:
            self._schedule_eviction(entry)

    def _schedule_eviction(self, entry: CacheEntry) -> None:
        if entry.subscriber_count > 0 or entry.status is CacheStatus.PENDING:
            return
        self._cancel_eviction(entry)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._evict(entry.key)
            return
        entry._evict_handle = loop.call_later(self._retention, self._evict, entry.key)

    def _cancel_eviction(self, entry: CacheEntry) -> None:
        if entry._evict_handle is not None:
            entry._evict_handle.cancel()
            entry._evict_handle = None

    def _evict(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry._evict_handle = None
        if entry.subscriber_count > 0 or entry.status is CacheStatus.PENDING:
            return
        del self._entries[key]
        logger.debug(f"EVICT: {key}")


__all__ = ["CacheEntry", "Subscription", "TagCache"]
