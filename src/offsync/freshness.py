"""Per-key freshness tracking and the derived global view."""

from __future__ import annotations

import math

from offsync.config import DATA_OUTDATED_THRESHOLD, DATA_STALE_THRESHOLD
from offsync.duration import parse_duration
from offsync.observable import Observable
from offsync.types import Clock, Duration, FreshnessView, now_ms

GLOBAL_KEY = "global"


def derive_global_view(
    last_update: int | None,
    is_refreshing: bool,
    is_online: bool,
    *,
    now: int,
    stale_threshold: int = DATA_STALE_THRESHOLD,
    outdated_threshold: int = DATA_OUTDATED_THRESHOLD,
) -> FreshnessView:
    """Combine the global record with the live flags. Pure."""
    age: float = now - last_update if last_update is not None else math.inf
    is_fresh = age < stale_threshold
    return FreshnessView(
        last_update=last_update,
        is_fresh=is_fresh,
        is_outdated=outdated_threshold <= age < stale_threshold,
        is_stale=not is_fresh,
        age=age,
        is_refreshing=is_refreshing,
        is_online=is_online,
        stale_threshold=stale_threshold,
        outdated_threshold=outdated_threshold,
    )


class FreshnessTracker:
    """Last successful update per logical data key.

    The ``global`` key is touched only by the refresh orchestrator, once per
    completed cycle. A key with no record is always stale.
    """

    def __init__(
        self,
        *,
        stale_threshold: Duration = DATA_STALE_THRESHOLD,
        outdated_threshold: Duration = DATA_OUTDATED_THRESHOLD,
        clock: Clock = now_ms,
    ) -> None:
        self.stale_threshold = parse_duration(stale_threshold)
        self.outdated_threshold = parse_duration(outdated_threshold)
        if self.outdated_threshold > self.stale_threshold:
            raise ValueError("outdated_threshold must not exceed stale_threshold")
        self._clock = clock
        self.records: Observable[dict[str, int]] = Observable({})

    def touch(self, key: str) -> None:
        now = self._clock()
        self.records.update(lambda records: {**records, key: now})

    def last_update(self, key: str) -> int | None:
        return self.records.get().get(key)

    def age(self, key: str) -> float:
        """Milliseconds since the last update, math.inf if never updated."""
        last = self.last_update(key)
        if last is None:
            return math.inf
        return self._clock() - last

    def is_stale(self, key: str) -> bool:
        return self.age(key) >= self.stale_threshold

    def is_fresh(self, key: str) -> bool:
        return not self.is_stale(key)

    def is_outdated(self, key: str) -> bool:
        """Past the outdated threshold but not yet stale."""
        return self.outdated_threshold <= self.age(key) < self.stale_threshold

    def stale_keys(self) -> list[str]:
        return [key for key in self.records.get() if self.is_stale(key)]

    def outdated_keys(self) -> list[str]:
        return [key for key in self.records.get() if self.is_outdated(key)]

    def global_view(self, *, is_refreshing: bool, is_online: bool) -> FreshnessView:
        return derive_global_view(
            self.last_update(GLOBAL_KEY),
            is_refreshing,
            is_online,
            now=self._clock(),
            stale_threshold=self.stale_threshold,
            outdated_threshold=self.outdated_threshold,
        )
