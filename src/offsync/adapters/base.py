"""Base adapter protocol for durable storage backends."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async key -> serialized string storage interface."""

    async def get(self, key: str) -> str | None:
        """Get a stored value by key."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value, overwriting any previous one."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a stored value."""
        ...

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        ...

    async def clear(self) -> None:
        """Remove every stored value."""
        ...

    async def disconnect(self) -> None:
        """Release the storage backend."""
        ...
