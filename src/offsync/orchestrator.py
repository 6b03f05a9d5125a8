"""Coordinated, single-flight refresh of every registered data source.

Consumers register a named async callback when they mount and unregister
it when they unmount. A refresh cycle starts all callbacks together, waits
for every one of them to settle, and then marks the ``global`` freshness
record. Triggers (manual, timer, reconnect, tab visible) arriving while a
cycle is in flight are dropped, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from offsync.config import RefreshConfigStore, merge_config
from offsync.duration import parse_duration
from offsync.freshness import GLOBAL_KEY, FreshnessTracker
from offsync.network import NetworkMonitor
from offsync.observable import Observable, Unsubscribe
from offsync.types import Clock, Duration, NetworkStatus, RefreshConfig, RefreshOutcome, now_ms

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]


class RefreshOrchestrator:
    """Owns the refresh timer and the "refresh in flight" flag."""

    def __init__(
        self,
        monitor: NetworkMonitor,
        tracker: FreshnessTracker,
        config: RefreshConfig | None = None,
        *,
        callback_timeout: Duration = "30s",
        config_store: RefreshConfigStore | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._monitor = monitor
        self._tracker = tracker
        self._config = config or RefreshConfig()
        self._callback_timeout = parse_duration(callback_timeout)
        self._config_store = config_store
        self._clock = clock

        self._callbacks: dict[str, RefreshCallback] = {}
        self.refreshing: Observable[bool] = Observable(False)
        self.last_outcome: RefreshOutcome | None = None

        self._timer_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._hidden = False
        self._started = False
        self._was_online = monitor.is_online
        self._unsubscribe: Unsubscribe | None = monitor.status.subscribe(
            self._on_network_status, emit_current=False
        )

    @property
    def config(self) -> RefreshConfig:
        return self._config

    @property
    def is_refreshing(self) -> bool:
        return self.refreshing.get()

    @property
    def registered(self) -> list[str]:
        return list(self._callbacks)

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def register(self, name: str, callback: RefreshCallback) -> None:
        """Register (or replace) the callback for name."""
        self._callbacks[name] = callback

    def unregister(self, name: str) -> None:
        """Remove name. A cycle already running keeps its snapshot."""
        self._callbacks.pop(name, None)

    # -------------------------------------------------------------------------
    # Refresh cycle
    # -------------------------------------------------------------------------

    async def _run_callback(self, name: str, callback: RefreshCallback) -> None:
        try:
            await asyncio.wait_for(callback(), timeout=self._callback_timeout / 1000)
        except asyncio.TimeoutError:
            raise TimeoutError(
                f"Refresh callback {name!r} timed out after {self._callback_timeout}ms"
            ) from None

    async def refresh_all(self, trigger: str = "manual") -> RefreshOutcome | None:
        """Run one refresh cycle.

        Returns None without running anything when a cycle is already in
        flight or the network monitor reports offline. Otherwise every
        registered callback runs; failures are collected on the outcome,
        never raised, and the global freshness record is touched once.
        """
        # No await between the check and the set: no other task can interleave
        if self.refreshing.get():
            logger.info("Refresh (%s) skipped: already in progress", trigger)
            return None
        if not self._monitor.is_online:
            logger.info("Refresh (%s) skipped: offline", trigger)
            return None

        self.refreshing.set(True)
        outcome = RefreshOutcome(trigger=trigger, started_at=self._clock())
        try:
            snapshot = list(self._callbacks.items())
            tasks = [
                asyncio.ensure_future(self._run_callback(name, callback))
                for name, callback in snapshot
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)

            for (name, _), result in zip(snapshot, results):
                if isinstance(result, BaseException):
                    logger.warning("Refresh callback %r failed: %s", name, result)
                    outcome.failures[name] = result
                else:
                    outcome.succeeded.append(name)

            self._tracker.touch(GLOBAL_KEY)
            outcome.finished_at = self._clock()
            self.last_outcome = outcome
            logger.info(
                "Refresh (%s) finished: %d ok, %d failed",
                trigger,
                len(outcome.succeeded),
                len(outcome.failures),
            )
            return outcome
        finally:
            self.refreshing.set(False)

    def _trigger(self, trigger: str) -> None:
        self._spawn(self.refresh_all(trigger))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running loop; refresh trigger dropped")
            return
        task = loop.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -------------------------------------------------------------------------
    # Reactions
    # -------------------------------------------------------------------------

    def _on_network_status(self, status: NetworkStatus) -> None:
        was_online = self._was_online
        self._was_online = status.is_online
        if status.is_online and not was_online:
            if self._config.refresh_on_reconnect:
                logger.info("Connection restored, triggering refresh")
                self._trigger("reconnect")
        elif was_online and not status.is_online:
            logger.info("Connection lost, working offline")

    def handle_visibility_change(self, hidden: bool) -> None:
        """Host's tab/window visibility changed."""
        was_hidden = self._hidden
        self._hidden = hidden
        if not self._config.only_when_visible:
            return
        if hidden:
            self._stop_timer()
        elif was_hidden:
            self._arm_timer()
            self._trigger("visible")

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    async def _tick(self, interval_ms: int) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            # Spawned, so re-arming the timer never cancels a running cycle
            self._trigger("timer")

    def _stop_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    def _arm_timer(self) -> None:
        self._stop_timer()
        if not self._started or not self._config.timer_armed:
            return
        if self._config.only_when_visible and self._hidden:
            return
        self._timer_task = asyncio.ensure_future(self._tick(self._config.interval_ms))

    def start(self) -> None:
        """Arm the timer according to the current config."""
        self._started = True
        self._arm_timer()

    def stop(self) -> None:
        self._started = False
        self._stop_timer()

    def apply_config(self, config: RefreshConfig) -> None:
        """Replace the config without persisting it, re-arming the timer."""
        self._config = config
        self._arm_timer()

    async def update_config(self, **changes: Any) -> RefreshConfig:
        """Merge changes, persist them and re-arm the timer right away.

        ``interval_ms`` accepts the names in REFRESH_INTERVALS ("5m",
        "manual") as well as their millisecond values.
        """
        self.apply_config(merge_config(self._config, changes))
        if self._config_store is not None:
            await self._config_store.save(self._config)
        return self._config

    async def dispose(self) -> None:
        """Stop the timer and wait for pending triggers. Running cycles finish."""
        self.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending = [task for task in self._background_tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
