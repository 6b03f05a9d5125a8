"""Composition root: builds every service once and wires them together.

Services are passed to consumers explicitly instead of living as module
globals. UI code reads ``engine.freshness`` (or ``engine.view()``) and
never keeps its own copy of network or refresh state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from offsync.adapters.base import AsyncStorageAdapter
from offsync.cache import CacheStore
from offsync.config import (
    DATA_OUTDATED_THRESHOLD,
    DATA_STALE_THRESHOLD,
    DEFAULT_CACHE_TTL,
    RefreshConfigStore,
)
from offsync.environment import Environment
from offsync.freshness import FreshnessTracker
from offsync.network import NetworkMonitor
from offsync.observable import Observable, Unsubscribe
from offsync.orchestrator import RefreshOrchestrator
from offsync.request import RequestAdapter
from offsync.types import Clock, Duration, FreshnessView, RefreshConfig, now_ms

logger = logging.getLogger(__name__)


@dataclass
class SyncEngine:
    """Every engine service, constructed once per process."""

    environment: Environment
    storage: AsyncStorageAdapter
    cache: CacheStore
    tracker: FreshnessTracker
    monitor: NetworkMonitor
    orchestrator: RefreshOrchestrator
    requests: RequestAdapter
    config_store: RefreshConfigStore
    freshness: Observable[FreshnessView] = field(init=False)
    _ready: asyncio.Future[None] | None = field(default=None, init=False)
    _unsubscribers: list[Unsubscribe] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self.freshness = Observable(self.view())
        self._unsubscribers = [
            self.monitor.status.subscribe(self._recompute, emit_current=False),
            self.tracker.records.subscribe(self._recompute, emit_current=False),
            self.orchestrator.refreshing.subscribe(self._recompute, emit_current=False),
        ]

    def _recompute(self, _: object) -> None:
        self.freshness.set(self.view())

    def set_base_url(self, base_url: str) -> None:
        """Follow a changed server address. Only the probe URL changes."""
        self.monitor.set_base_url(base_url)

    def handle_visibility_change(self, hidden: bool) -> None:
        """Forward a host visibility change to the monitor and orchestrator."""
        self.monitor.handle_visibility_change(hidden)
        self.orchestrator.handle_visibility_change(hidden)

    def handle_focus(self) -> None:
        self.monitor.handle_focus()

    def view(self) -> FreshnessView:
        """Current global freshness view, computed synchronously."""
        return self.tracker.global_view(
            is_refreshing=self.orchestrator.is_refreshing,
            is_online=self.monitor.is_online,
        )

    def _ready_future(self) -> asyncio.Future[None]:
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_future()
        return self._ready

    async def start(self) -> None:
        """Load persisted settings, start monitoring and the refresh timer."""
        ready = self._ready_future()
        if ready.done():
            return
        config = await self.config_store.load()
        self.orchestrator.apply_config(config)
        self.monitor.start()
        self.orchestrator.start()
        ready.set_result(None)
        logger.info(
            "Sync engine started (%s, refresh every %sms)",
            self.environment.name,
            config.interval_ms or "manual",
        )

    async def wait_ready(self) -> None:
        """Block until start() has completed."""
        await asyncio.shield(self._ready_future())

    async def dispose(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.orchestrator.dispose()
        await self.monitor.dispose()
        await self.storage.disconnect()


def create_engine(
    environment: Environment,
    base_url: str,
    *,
    refresh_config: RefreshConfig | None = None,
    default_ttl: Duration = DEFAULT_CACHE_TTL,
    stale_threshold: Duration = DATA_STALE_THRESHOLD,
    outdated_threshold: Duration = DATA_OUTDATED_THRESHOLD,
    request_timeout: Duration = "30s",
    callback_timeout: Duration = "30s",
    clock: Clock = now_ms,
) -> SyncEngine:
    """Create a sync engine for the given environment.

    Args:
        environment: Host capabilities (platform flag, storage)
        base_url: Server base address, also used for connectivity probes
        refresh_config: Defaults used when no settings are persisted yet
        default_ttl: Cache TTL (default: 7 days)
        stale_threshold: Freshness stale threshold (default: 1 day)
        outdated_threshold: Freshness outdated threshold (default: 5 minutes)
        request_timeout: Timeout applied to every adapter read
        callback_timeout: Timeout applied to each refresh callback

    Returns:
        SyncEngine with every service wired; call ``await engine.start()``
    """
    storage = environment.open_storage()
    cache = CacheStore(storage, default_ttl=default_ttl, clock=clock)
    tracker = FreshnessTracker(
        stale_threshold=stale_threshold,
        outdated_threshold=outdated_threshold,
        clock=clock,
    )
    monitor = NetworkMonitor(environment, base_url, clock=clock)
    config_store = RefreshConfigStore(storage, default=refresh_config or RefreshConfig())
    orchestrator = RefreshOrchestrator(
        monitor,
        tracker,
        refresh_config,
        callback_timeout=callback_timeout,
        config_store=config_store,
        clock=clock,
    )
    requests = RequestAdapter(cache, tracker, monitor, timeout=request_timeout, clock=clock)
    return SyncEngine(
        environment=environment,
        storage=storage,
        cache=cache,
        tracker=tracker,
        monitor=monitor,
        orchestrator=orchestrator,
        requests=requests,
        config_store=config_store,
    )
