"""Connectivity detection.

Combines the platform's passive online/offline flag with active probing of
the configured base address. The platform flag can say "online" while the
server is unreachable (link up, LAN unplugged upstream, captive portal), so a
heartbeat keeps probing and only flips to offline after consecutive failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine
from dataclasses import dataclass, replace
from typing import Any, Literal

import httpx

from offsync.config import (
    FAILURES_BEFORE_OFFLINE,
    OFFLINE_POLL_MS,
    ONLINE_POLL_MS,
    PROBE_TIMEOUT_MS,
)
from offsync.environment import Environment
from offsync.errors import FetchFailed, OfflineSyncError, ProbeTimeout
from offsync.observable import Observable, Unsubscribe
from offsync.types import Clock, ConnectionQuality, NetworkStatus, now_ms

logger = logging.getLogger(__name__)

# "invalid": no probe URL could be built from the base address
ProbeOutcome = Literal["ok", "rejected", "unreachable", "invalid"]


def build_probe_url(base_url: str, now: int) -> str | None:
    """``<base>?__ping=<epoch-ms>``, or None if base_url is not usable."""
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError):
        logger.warning("Invalid base URL for network probe: %r", base_url)
        return None
    if url.scheme not in ("http", "https") or not url.host:
        logger.warning("Invalid base URL for network probe: %r", base_url)
        return None
    return str(url.copy_merge_params({"__ping": str(now)}))


async def probe(client: httpx.AsyncClient, url: str, timeout_ms: int) -> None:
    """GET url once; any 2xx within the timeout is success.

    Raises ProbeTimeout or FetchFailed. The request is raced against a
    timer so a hung connection cannot outlive the timeout.
    """
    try:
        response = await asyncio.wait_for(
            client.get(url, headers={"Cache-Control": "no-store"}),
            timeout=timeout_ms / 1000,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise ProbeTimeout(f"No answer from {url} within {timeout_ms}ms") from e
    except httpx.HTTPError as e:
        raise FetchFailed(f"Probe transport error: {e}") from e
    if not response.is_success:
        raise FetchFailed(
            f"Probe returned HTTP {response.status_code}",
            status_code=response.status_code,
        )


@dataclass(frozen=True, slots=True)
class PingResult:
    """Diagnostic ping of a base address."""

    ok: bool
    ping_ms: int | None
    checked_at: int
    error: str | None


async def ping(
    base_url: str,
    *,
    timeout_ms: int = PROBE_TIMEOUT_MS,
    client: httpx.AsyncClient | None = None,
) -> PingResult:
    """Ping a base address and measure round-trip time. Never raises."""
    checked_at = now_ms()
    url = build_probe_url(base_url, checked_at)
    if url is None:
        return PingResult(ok=False, ping_ms=None, checked_at=checked_at, error="Invalid URL")

    owned = client is None
    http = client or httpx.AsyncClient()
    start = time.perf_counter()
    try:
        await probe(http, url, timeout_ms)
    except ProbeTimeout:
        return PingResult(ok=False, ping_ms=None, checked_at=checked_at, error="Timeout")
    except OfflineSyncError as e:
        return PingResult(ok=False, ping_ms=None, checked_at=checked_at, error=str(e))
    finally:
        if owned:
            await http.aclose()
    elapsed = max(0, round((time.perf_counter() - start) * 1000))
    return PingResult(ok=True, ping_ms=elapsed, checked_at=checked_at, error=None)


class NetworkMonitor:
    """Observable connectivity status for the whole process."""

    def __init__(
        self,
        environment: Environment,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Clock = now_ms,
        timeout_ms: int = PROBE_TIMEOUT_MS,
        online_poll_ms: int = ONLINE_POLL_MS,
        offline_poll_ms: int = OFFLINE_POLL_MS,
        failures_before_offline: int = FAILURES_BEFORE_OFFLINE,
    ) -> None:
        self._env = environment
        self._base_url = base_url
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self._timeout_ms = timeout_ms
        self._online_poll_ms = online_poll_ms
        self._offline_poll_ms = offline_poll_ms
        self._failures_before_offline = failures_before_offline

        online = environment.online.get()
        now = clock()
        self.status: Observable[NetworkStatus] = Observable(
            NetworkStatus(
                is_online=online,
                is_checking=True,
                last_checked=now,
                last_online=now if online else None,
                connection_quality=ConnectionQuality.from_connection_type(
                    environment.connection_type.get()
                ),
            )
        )

        self._failures = 0
        self._poll_ms = online_poll_ms if online else offline_poll_ms
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._in_flight: dict[int, asyncio.Task[ProbeOutcome]] = {}
        self._background_tasks: set[asyncio.Task[bool]] = set()
        self._unsubscribers: list[Unsubscribe] = []
        self._started = False
        self._disposed = False

    @property
    def is_online(self) -> bool:
        return self.status.get().is_online

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, base_url: str) -> None:
        """Point future probes at a new base address. Triggers nothing."""
        self._base_url = base_url

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    # -------------------------------------------------------------------------
    # Probing
    # -------------------------------------------------------------------------

    async def _probe(self, timeout_ms: int) -> ProbeOutcome:
        url = build_probe_url(self._base_url, self._clock())
        if url is None:
            return "invalid"
        try:
            await probe(self._http(), url, timeout_ms)
        except FetchFailed as e:
            logger.debug("Connectivity probe failed: %s", e)
            return "unreachable" if e.status_code is None else "rejected"
        except ProbeTimeout as e:
            logger.debug("Connectivity probe failed: %s", e)
            return "unreachable"
        return "ok"

    async def _probe_shared(self, timeout_ms: int) -> ProbeOutcome:
        """Run one probe; concurrent callers with the same timeout share it.

        A caller asking for a different timeout gets its own probe, so no
        caller waits longer (or gives up sooner) than it asked for.
        """
        task = self._in_flight.get(timeout_ms)
        if task is None:
            task = asyncio.ensure_future(self._probe(timeout_ms))
            self._in_flight[timeout_ms] = task

            def _clear(done: asyncio.Task[ProbeOutcome]) -> None:
                if self._in_flight.get(timeout_ms) is done:
                    del self._in_flight[timeout_ms]

            task.add_done_callback(_clear)
        return await asyncio.shield(task)

    async def check_now(self, timeout_ms: int | None = None) -> bool:
        """Probe once and report reachability. Never raises.

        Returns True only for a 2xx within the timeout and False for any
        other answer. When the server cannot be reached (timeout, transport
        error) or the probe URL cannot be built, the platform flag is
        returned instead. Does not touch the observable status.
        """
        if not self._env.online.get():
            return False
        outcome = await self._probe_shared(timeout_ms or self._timeout_ms)
        if outcome == "ok":
            return True
        if outcome == "rejected":
            return False
        return self._env.online.get()

    async def refresh_status(self) -> bool:
        """Active check that updates the observable status.

        A single failed probe only speeds up the heartbeat; the status goes
        offline after ``failures_before_offline`` consecutive failures.
        """
        if self._disposed:
            return False

        self.status.update(lambda s: replace(s, is_checking=True))

        if not self._env.online.get():
            self._failures = self._failures_before_offline
            self._apply(False)
            return False

        outcome = await self._probe_shared(self._timeout_ms)
        if self._disposed:
            return False

        if outcome == "invalid":
            online = self._env.online.get()
            self._apply(online)
            return online

        if outcome == "ok":
            self._failures = 0
            self._set_poll(self._online_poll_ms)
            self._apply(True)
            return True

        self._failures += 1
        if self._failures == 1:
            self._set_poll(self._offline_poll_ms)
        if self._failures >= self._failures_before_offline:
            self._apply(False)
        else:
            self.status.update(lambda s: replace(s, is_checking=False))
        return False

    def _apply(self, online: bool) -> None:
        now = self._clock()
        quality = ConnectionQuality.from_connection_type(self._env.connection_type.get())

        def next_status(status: NetworkStatus) -> NetworkStatus:
            last_online = status.last_online
            if online:
                last_online = max(now, last_online or now)
            return replace(
                status,
                is_online=online,
                is_checking=False,
                last_checked=now,
                last_online=last_online,
                connection_quality=quality if online else ConnectionQuality.UNKNOWN,
                retry_count=0 if online else status.retry_count + 1,
            )

        self.status.update(next_status)

    # -------------------------------------------------------------------------
    # Platform events
    # -------------------------------------------------------------------------

    def handle_platform_online(self) -> None:
        """Platform says online: show it now, confirm with a probe."""
        if self._disposed:
            return
        self._failures = 0
        self._apply(True)
        self._set_poll(self._online_poll_ms)
        self._spawn(self.refresh_status())

    def handle_platform_offline(self) -> None:
        """Platform says offline: no probe needed."""
        if self._disposed:
            return
        self._failures = self._failures_before_offline
        self._apply(False)
        self._set_poll(self._offline_poll_ms)

    def handle_connection_change(self) -> None:
        quality = ConnectionQuality.from_connection_type(self._env.connection_type.get())
        self.status.update(lambda s: replace(s, connection_quality=quality))

    def handle_focus(self) -> None:
        """The host window regained focus: check right away."""
        if self._disposed:
            return
        self._spawn(self.refresh_status())

    def handle_visibility_change(self, hidden: bool) -> None:
        """Becoming visible runs an immediate check; hiding does nothing."""
        if self._disposed or hidden:
            return
        self._spawn(self.refresh_status())

    def _on_platform_flag(self, online: bool) -> None:
        if online:
            self.handle_platform_online()
        else:
            self.handle_platform_offline()

    def _spawn(self, coro: Coroutine[Any, Any, bool]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop: the next heartbeat will confirm instead
            coro.close()
            return
        task = loop.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # -------------------------------------------------------------------------
    # Heartbeat lifecycle
    # -------------------------------------------------------------------------

    def _set_poll(self, poll_ms: int) -> None:
        if poll_ms == self._poll_ms:
            return
        self._poll_ms = poll_ms
        # The loop re-reads the interval each round; restart only from outside it
        task = self._heartbeat_task
        if task is not None and asyncio.current_task() is not task:
            task.cancel()
            self._heartbeat_task = asyncio.ensure_future(self._heartbeat())

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._poll_ms / 1000)
            if self._env.online.get():
                await self.refresh_status()

    def start(self) -> None:
        """Subscribe to platform events, run an initial check, start polling."""
        if self._started or self._disposed:
            return
        self._started = True
        self._unsubscribers.append(
            self._env.online.subscribe(self._on_platform_flag, emit_current=False)
        )
        self._unsubscribers.append(
            self._env.connection_type.subscribe(
                lambda _: self.handle_connection_change(), emit_current=False
            )
        )
        self._spawn(self.refresh_status())
        self._heartbeat_task = asyncio.ensure_future(self._heartbeat())

    async def dispose(self) -> None:
        """Cancel the heartbeat and pending checks; close an owned client."""
        self._disposed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        tasks: list[asyncio.Future[object]] = [*self._background_tasks]
        if self._heartbeat_task is not None:
            tasks.append(self._heartbeat_task)
            self._heartbeat_task = None
        tasks.extend(self._in_flight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
