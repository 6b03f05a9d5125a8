"""Durable TTL cache on top of a storage adapter.

Provides:
- get(): lookup, optionally allowing expired ("stale") entries
- set(): unconditional overwrite stamped with the current time
- evict_prefix(): bulk invalidation on filter changes or logout
- delete(), clear(): manual removal

Staleness is not decided here; a non-expired entry is always returned and
the freshness tracker says whether it is outdated.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from offsync.adapters.base import AsyncStorageAdapter
from offsync.config import DEFAULT_CACHE_TTL
from offsync.duration import parse_duration
from offsync.errors import CacheCorrupt, CacheMiss
from offsync.types import CacheEntry, Clock, Duration, now_ms

logger = logging.getLogger(__name__)


class CacheStore:
    """Key -> CacheEntry map persisted through a storage adapter."""

    def __init__(
        self,
        adapter: AsyncStorageAdapter,
        *,
        default_ttl: Duration = DEFAULT_CACHE_TTL,
        namespace: str = "cache_",
        clock: Clock = now_ms,
    ) -> None:
        self._adapter = adapter
        self._default_ttl = parse_duration(default_ttl)
        self._namespace = namespace
        self._clock = clock
        self._disabled = False

    @property
    def disabled(self) -> bool:
        return self._disabled

    def set_disabled(self, flag: bool) -> None:
        """Turn every read into a miss (writes still land)."""
        self._disabled = flag
        logger.info("Cache %s", "disabled" if flag else "enabled")

    def _storage_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def _decode(self, key: str, raw: str) -> CacheEntry[Any]:
        try:
            record = json.loads(raw)
            if not isinstance(record, dict):
                raise TypeError("record is not an object")
            return CacheEntry.from_record(record)
        except (ValueError, TypeError, KeyError) as e:
            raise CacheCorrupt(key, str(e)) from e

    async def get_entry(self, key: str, *, allow_stale: bool = False) -> CacheEntry[Any] | None:
        """Get the full entry, or None on a miss.

        Expired entries are evicted unless ``allow_stale`` is set, in which
        case they are returned as-is. Corrupt records are evicted and
        reported as misses.
        """
        if self._disabled:
            return None

        storage_key = self._storage_key(key)
        raw = await self._adapter.get(storage_key)
        if raw is None:
            return None

        try:
            entry = self._decode(key, raw)
        except CacheCorrupt as e:
            logger.warning("%s; evicting", e)
            await self._adapter.delete(storage_key)
            return None

        if entry.is_expired(self._clock()) and not allow_stale:
            logger.debug("Cache entry %s expired; evicting", key)
            await self._adapter.delete(storage_key)
            return None

        return entry

    async def get(self, key: str, *, allow_stale: bool = False) -> Any | None:
        """Get a cached value, or None on a miss."""
        entry = await self.get_entry(key, allow_stale=allow_stale)
        return entry.data if entry is not None else None

    async def require(self, key: str, *, allow_stale: bool = False) -> Any:
        """Like get(), but raises CacheMiss instead of returning None."""
        entry = await self.get_entry(key, allow_stale=allow_stale)
        if entry is None:
            raise CacheMiss(key)
        return entry.data

    async def set(self, key: str, value: Any, ttl: Duration | None = None) -> CacheEntry[Any]:
        """Store a value, overwriting unconditionally."""
        entry: CacheEntry[Any] = CacheEntry(
            key=key,
            data=value,
            written_at=self._clock(),
            ttl=parse_duration(ttl) if ttl is not None else self._default_ttl,
        )
        await self._adapter.set(self._storage_key(key), json.dumps(entry.to_record()))
        return entry

    async def delete(self, key: str) -> None:
        await self._adapter.delete(self._storage_key(key))

    async def evict_prefix(self, prefix: str) -> int:
        """Remove every entry whose logical key starts with prefix."""
        storage_keys = await self._adapter.keys(self._storage_key(prefix))
        for storage_key in storage_keys:
            await self._adapter.delete(storage_key)
        if storage_keys:
            logger.debug("Evicted %d cache entries under %r", len(storage_keys), prefix)
        return len(storage_keys)

    async def clear(self) -> None:
        """Remove every cache entry (settings sharing the adapter are kept)."""
        await self.evict_prefix("")
