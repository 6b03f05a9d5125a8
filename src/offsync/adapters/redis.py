"""Redis storage adapter."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from redis.exceptions import RedisError

from offsync.errors import StorageError


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise StorageError(f"Redis {action} failed: {e}") from e


class AsyncRedisAdapter:
    """Async Redis storage adapter.

    Keys are namespaced under ``<prefix>:kv:`` so several engines (or other
    applications) can share one database. Redis failures surface as
    StorageError.
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "offsync",
    ) -> None:
        self._client = client
        self._prefix = prefix

    def _full_key(self, key: str) -> str:
        """Generate full Redis key for a stored value."""
        return f"{self._prefix}:kv:{key}"

    def _strip(self, full_key: bytes | str) -> str:
        if isinstance(full_key, bytes):
            full_key = full_key.decode("utf-8")
        return full_key[len(self._prefix) + len(":kv:") :]

    async def _scan(self, pattern: str) -> list[bytes | str]:
        found: list[bytes | str] = []
        cursor: int = 0
        while True:
            result = await self._client.scan(cursor, match=pattern, count=100)
            cursor = result[0]
            found.extend(result[1])
            if cursor == 0:
                break
        return found

    async def get(self, key: str) -> str | None:
        """Get a stored value by key."""
        with _storage_errors("get"):
            data = await self._client.get(self._full_key(key))
        if data is None:
            return None
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return str(data)

    async def set(self, key: str, value: str) -> None:
        """Store a value. Expiry is enforced by the cache store, not Redis."""
        with _storage_errors("set"):
            await self._client.set(self._full_key(key), value)

    async def delete(self, key: str) -> None:
        """Delete a stored value."""
        with _storage_errors("delete"):
            await self._client.delete(self._full_key(key))

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        # Glob metacharacters in the prefix are matched literally afterwards
        with _storage_errors("scan"):
            found = await self._scan(f"{self._prefix}:kv:*")
        return [k for k in (self._strip(f) for f in found) if k.startswith(prefix)]

    async def clear(self) -> None:
        """Remove every value under this adapter's namespace."""
        with _storage_errors("clear"):
            found = await self._scan(f"{self._prefix}:kv:*")
            if found:
                await self._client.delete(*found)

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
