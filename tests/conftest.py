"""Shared pytest fixtures."""

from dataclasses import replace

import pytest

from offsync import (
    AsyncMemoryAdapter,
    CacheStore,
    FreshnessTracker,
    NetworkStatus,
    Observable,
)


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeMonitor:
    """Stands in for NetworkMonitor where no probing is wanted."""

    def __init__(self, online: bool = True) -> None:
        self.status = Observable(NetworkStatus(is_online=online, is_checking=False))
        self.reachable = True
        self.check_count = 0
        self._ticks = 0

    @property
    def is_online(self) -> bool:
        return self.status.get().is_online

    def push(self, online: bool) -> None:
        """Publish a status observation, even if is_online did not change."""
        self._ticks += 1
        self.status.set(
            replace(self.status.get(), is_online=online, last_checked=self._ticks)
        )

    async def check_now(self, timeout_ms: int | None = None) -> bool:
        self.check_count += 1
        return self.reachable


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def adapter() -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter()


@pytest.fixture
def monitor() -> FakeMonitor:
    return FakeMonitor(online=True)


@pytest.fixture
def cache(adapter: AsyncMemoryAdapter, clock: FakeClock) -> CacheStore:
    return CacheStore(adapter, default_ttl="1h", clock=clock)


@pytest.fixture
def tracker(clock: FakeClock) -> FreshnessTracker:
    return FreshnessTracker(stale_threshold="1h", outdated_threshold="5m", clock=clock)
