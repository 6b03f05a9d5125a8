"""In-memory storage adapter."""

from collections import OrderedDict


class AsyncMemoryAdapter:
    """Async in-memory storage adapter with optional LRU eviction.

    Nothing survives a restart; this is the web default and the test double.
    """

    def __init__(self, max_items: int | None = None) -> None:
        self._data: OrderedDict[str, str] = OrderedDict()
        self._max_items = max_items

    async def get(self, key: str) -> str | None:
        """Get a stored value by key."""
        value = self._data.get(key)
        if value is not None:
            self._data.move_to_end(key)  # LRU touch
        return value

    async def set(self, key: str, value: str) -> None:
        """Store a value."""
        self._data[key] = value
        self._data.move_to_end(key)
        if self._max_items and len(self._data) > self._max_items:
            self._data.popitem(last=False)

    async def delete(self, key: str) -> None:
        """Delete a stored value."""
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        return [key for key in self._data if key.startswith(prefix)]

    async def clear(self) -> None:
        """Clear all stored values."""
        self._data.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass
