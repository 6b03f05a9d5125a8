"""Platform capability interface.

The engine never branches on "desktop or browser"; it asks the environment
for the passive online flag, the connection type hint and a storage adapter.
Hosts forward their platform events by setting the observables, e.g.
``env.online.set(False)`` from an "offline" event handler.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from offsync.adapters.base import AsyncStorageAdapter
from offsync.adapters.file import AsyncFileAdapter
from offsync.adapters.memory import AsyncMemoryAdapter
from offsync.observable import Observable


@runtime_checkable
class Environment(Protocol):
    """What the engine needs from the host platform."""

    name: str
    online: Observable[bool]
    connection_type: Observable[str | None]

    def open_storage(self) -> AsyncStorageAdapter:
        """Durable storage for cache entries and settings."""
        ...


class WebEnvironment:
    """Browser-like host.

    The host supplies the storage, since only it knows what survives a
    reload (a file under its profile directory, a Redis instance). Use
    ``WebEnvironment.in_memory()`` where nothing needs to persist.
    """

    name = "web"

    def __init__(
        self,
        storage: AsyncStorageAdapter,
        *,
        online: bool = True,
        connection_type: str | None = None,
    ) -> None:
        self.online = Observable(online)
        self.connection_type: Observable[str | None] = Observable(connection_type)
        self._storage = storage

    @classmethod
    def in_memory(
        cls, *, online: bool = True, connection_type: str | None = None
    ) -> WebEnvironment:
        """Non-durable environment: nothing survives a restart."""
        return cls(AsyncMemoryAdapter(), online=online, connection_type=connection_type)

    def open_storage(self) -> AsyncStorageAdapter:
        return self._storage


class DesktopEnvironment:
    """Desktop shell host. Storage is a JSON file in the data directory."""

    name = "desktop"

    def __init__(
        self,
        data_dir: str | os.PathLike[str],
        *,
        online: bool = True,
        connection_type: str | None = None,
        filename: str = "cache.json",
    ) -> None:
        self.online = Observable(online)
        self.connection_type: Observable[str | None] = Observable(connection_type)
        self.data_dir = Path(data_dir)
        self._filename = filename
        self._storage: AsyncFileAdapter | None = None

    def open_storage(self) -> AsyncStorageAdapter:
        if self._storage is None:
            self._storage = AsyncFileAdapter(self.data_dir / self._filename)
        return self._storage
