"""Storage adapters for the offsync engine."""

from contextlib import suppress

from offsync.adapters.base import AsyncStorageAdapter
from offsync.adapters.file import AsyncFileAdapter
from offsync.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from offsync.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncFileAdapter",
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
]
