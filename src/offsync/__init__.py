"""offsync - Offline-aware data synchronization for client applications."""

from contextlib import suppress

# Adapters (async only)
from offsync.adapters import (
    AsyncFileAdapter,
    AsyncMemoryAdapter,
    AsyncStorageAdapter,
)

# Services
from offsync.cache import CacheStore
from offsync.config import (
    ACTIVE_SESSION_VALIDITY,
    DATA_OUTDATED_THRESHOLD,
    DATA_STALE_THRESHOLD,
    DEFAULT_CACHE_TTL,
    RefreshConfigStore,
)

# Duration parsing
from offsync.duration import REFRESH_INTERVALS, parse_duration, parse_refresh_interval
from offsync.engine import SyncEngine, create_engine
from offsync.environment import DesktopEnvironment, Environment, WebEnvironment
from offsync.errors import (
    CacheCorrupt,
    CacheMiss,
    FetchFailed,
    NetworkUnavailable,
    OfflineSyncError,
    PartialRefreshFailure,
    ProbeTimeout,
    StorageError,
)
from offsync.freshness import GLOBAL_KEY, FreshnessTracker, derive_global_view
from offsync.keys import cache_key
from offsync.logging_config import setup_logging
from offsync.network import NetworkMonitor, PingResult, build_probe_url, ping
from offsync.observable import Observable
from offsync.orchestrator import RefreshOrchestrator
from offsync.request import HttpSource, RequestAdapter, backoff_delay

# Core types
from offsync.types import (
    CacheEntry,
    ConnectionQuality,
    Duration,
    FetchResult,
    FreshnessView,
    NetworkStatus,
    RefreshConfig,
    RefreshOutcome,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from offsync.adapters import AsyncRedisAdapter

__version__ = "0.1.0"

__all__ = [
    "ACTIVE_SESSION_VALIDITY",
    "DATA_OUTDATED_THRESHOLD",
    "DATA_STALE_THRESHOLD",
    "DEFAULT_CACHE_TTL",
    "GLOBAL_KEY",
    "REFRESH_INTERVALS",
    "AsyncFileAdapter",
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "CacheCorrupt",
    "CacheEntry",
    "CacheMiss",
    "CacheStore",
    "ConnectionQuality",
    "DesktopEnvironment",
    "Duration",
    "Environment",
    "FetchFailed",
    "FetchResult",
    "FreshnessTracker",
    "FreshnessView",
    "HttpSource",
    "NetworkMonitor",
    "NetworkStatus",
    "NetworkUnavailable",
    "Observable",
    "OfflineSyncError",
    "PartialRefreshFailure",
    "PingResult",
    "ProbeTimeout",
    "RefreshConfig",
    "RefreshConfigStore",
    "RefreshOrchestrator",
    "RefreshOutcome",
    "RequestAdapter",
    "StorageError",
    "SyncEngine",
    "WebEnvironment",
    "backoff_delay",
    "build_probe_url",
    "cache_key",
    "create_engine",
    "derive_global_view",
    "parse_duration",
    "parse_refresh_interval",
    "ping",
    "setup_logging",
]
