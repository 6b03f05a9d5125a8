"""JSON-file storage adapter for desktop and web installs."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from offsync.errors import StorageError

logger = logging.getLogger(__name__)


class AsyncFileAdapter:
    """Durable storage in a single JSON file.

    The whole map is held in memory and rewritten on every mutation via a
    temp file + ``os.replace`` so a crash never leaves a half-written file.
    Disk I/O runs in a worker thread; writes are serialized so the file
    always reflects the latest mutation. An unreadable file is logged and
    treated as empty.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None
        self._write_lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self._path, e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring storage file %s: not a JSON object", self._path)
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, self._path)

    async def _load(self) -> dict[str, str]:
        if self._data is None:
            data = await asyncio.to_thread(self._read)
            # Another caller may have loaded while this one was reading
            if self._data is None:
                self._data = data
        return self._data

    async def _flush(self) -> None:
        data = await self._load()
        async with self._write_lock:
            payload = json.dumps(data)
            try:
                await asyncio.to_thread(self._write, payload)
            except OSError as e:
                raise StorageError(f"Could not write {self._path}: {e}") from e

    async def get(self, key: str) -> str | None:
        """Get a stored value by key."""
        return (await self._load()).get(key)

    async def set(self, key: str, value: str) -> None:
        """Store a value and persist the file."""
        (await self._load())[key] = value
        await self._flush()

    async def delete(self, key: str) -> None:
        """Delete a stored value and persist the file."""
        if (await self._load()).pop(key, None) is not None:
            await self._flush()

    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        return [key for key in await self._load() if key.startswith(prefix)]

    async def clear(self) -> None:
        """Remove every stored value."""
        (await self._load()).clear()
        await self._flush()

    async def disconnect(self) -> None:
        """Drop the in-memory copy; the file is already up to date."""
        self._data = None
