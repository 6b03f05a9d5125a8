"""Engine constants and persisted refresh settings."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from typing import Any

from offsync.adapters.base import AsyncStorageAdapter
from offsync.duration import parse_refresh_interval
from offsync.types import RefreshConfig

logger = logging.getLogger(__name__)

# Not user-configurable.
DATA_STALE_THRESHOLD = 24 * 60 * 60 * 1000  # 1 day
DATA_OUTDATED_THRESHOLD = 5 * 60 * 1000  # 5 minutes
ACTIVE_SESSION_VALIDITY = 4 * 60 * 60 * 1000  # 4 hours
DEFAULT_CACHE_TTL = 7 * 24 * 60 * 60 * 1000  # 7 days

PROBE_TIMEOUT_MS = 3000
ONLINE_POLL_MS = 30_000
OFFLINE_POLL_MS = 5000
FAILURES_BEFORE_OFFLINE = 2

DEFAULT_REFRESH_CONFIG = RefreshConfig()

SETTINGS_KEY = "settings_refresh"

_FIELDS = ("enabled", "interval_ms", "only_when_visible", "refresh_on_reconnect")


def merge_config(config: RefreshConfig, changes: dict[str, Any]) -> RefreshConfig:
    """Apply partial changes to a config, validating the interval."""
    unknown = set(changes) - set(_FIELDS)
    if unknown:
        raise TypeError(f"Unknown refresh settings: {sorted(unknown)}")
    if "interval_ms" in changes:
        changes = {**changes, "interval_ms": parse_refresh_interval(changes["interval_ms"])}
    return replace(config, **changes)


class RefreshConfigStore:
    """Persists RefreshConfig in the storage adapter."""

    def __init__(
        self,
        adapter: AsyncStorageAdapter,
        *,
        key: str = SETTINGS_KEY,
        default: RefreshConfig = DEFAULT_REFRESH_CONFIG,
    ) -> None:
        self._adapter = adapter
        self._key = key
        self._default = default

    async def load(self) -> RefreshConfig:
        """Load the stored config, falling back to defaults when unusable."""
        raw = await self._adapter.get(self._key)
        if raw is None:
            return self._default
        try:
            stored = json.loads(raw)
            values = {name: stored[name] for name in _FIELDS if name in stored}
            return merge_config(self._default, values)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Ignoring unreadable refresh settings: %s", e)
            return self._default

    async def save(self, config: RefreshConfig) -> None:
        await self._adapter.set(self._key, json.dumps(asdict(config)))
