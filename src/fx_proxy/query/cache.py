"""Bounded, short-TTL response cache for query resolvers."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


def make_cache_key(operation: str, args: dict[str, Any]) -> str:
    """Deterministic key for (operation, arguments).

    Argument names are sorted; sequence values keep their order, so
    ``symbols=["EUR", "GBP"]`` and ``symbols=["GBP", "EUR"]`` are distinct keys.
    """
    return f"{operation}:{json.dumps(args, sort_keys=True, separators=(',', ':'), default=str)}"


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


class ResolverCache:
    """LRU cache with per-entry expiry, scoped to one serving process.

    Entries are dropped either when the cache is full (least recently used
    first) or when read after their deadline; an expired entry is never
    returned. Not shared across processes.
    """

    def __init__(
        self,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._inflight: dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, key: str) -> Any | None:
        """Return the live value for `key`, or None on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store `value` until now + ttl_seconds, evicting LRU entries if full."""
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)
        self._entries[key] = _CacheEntry(
            value=value, expires_at=self._clock() + ttl_seconds
        )

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: float,
    ) -> Any:
        """Read-through lookup that coalesces concurrent misses.

        While one caller is loading `key`, other callers for the same key
        await that load instead of issuing their own. Failures are not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited failure does not warn.
            future.exception()
            raise
        else:
            self.put(key, value, ttl_seconds)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)
