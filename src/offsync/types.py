"""Core types for the offsync engine."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from offsync.errors import NetworkUnavailable, PartialRefreshFailure

T = TypeVar("T")

# Duration type alias
Duration = str | int  # "30s", "5m", "2h", "1d" or milliseconds

# Returns the current time as Unix epoch milliseconds
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in Unix epoch milliseconds."""
    return int(time.time() * 1000)


class ConnectionQuality(str, Enum):
    """Coarse link quality reported by the platform."""

    FAST = "fast"
    SLOW = "slow"
    UNKNOWN = "unknown"

    @classmethod
    def from_connection_type(cls, effective_type: str | None) -> "ConnectionQuality":
        if not effective_type:
            return cls.UNKNOWN
        kind = effective_type.lower()
        if kind in ("4g", "wifi", "ethernet"):
            return cls.FAST
        if kind in ("3g", "2g", "slow-2g"):
            return cls.SLOW
        return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class NetworkStatus:
    """Observable connectivity state."""

    is_online: bool = False
    is_checking: bool = True
    last_checked: int | None = None  # Unix timestamp ms
    last_online: int | None = None  # Never decreases
    connection_quality: ConnectionQuality = ConnectionQuality.UNKNOWN
    retry_count: int = 0


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with write time and time-to-live."""

    key: str
    data: T
    written_at: int  # Unix timestamp ms
    ttl: int  # ms

    def age(self, now: int) -> int:
        return now - self.written_at

    def is_expired(self, now: int) -> bool:
        """Hard expiry: past the TTL."""
        return self.age(now) > self.ttl

    def is_stale(self, now: int, threshold: int) -> bool:
        """Soft expiry: usable, but older than the staleness threshold."""
        return self.age(now) > threshold

    def to_record(self) -> dict[str, Any]:
        """Persistence record, as written to durable storage."""
        return {
            "key": self.key,
            "value": self.data,
            "writtenAt": self.written_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CacheEntry[Any]":
        return cls(
            key=str(record["key"]),
            data=record["value"],
            written_at=int(record["writtenAt"]),
            ttl=int(record["ttl"]),
        )


@dataclass(frozen=True, slots=True)
class RefreshConfig:
    """User-facing refresh settings.

    ``interval_ms == 0`` means manual refresh only: the timer stays
    disarmed even when ``enabled`` is true.
    """

    enabled: bool = True
    interval_ms: int = 30_000
    only_when_visible: bool = True
    refresh_on_reconnect: bool = True

    @property
    def timer_armed(self) -> bool:
        return self.enabled and self.interval_ms > 0


@dataclass(frozen=True, slots=True)
class FreshnessView:
    """What UI consumers read: global freshness plus live flags."""

    last_update: int | None
    is_fresh: bool
    is_outdated: bool
    is_stale: bool
    age: float  # ms, math.inf when never updated
    is_refreshing: bool
    is_online: bool
    stale_threshold: int
    outdated_threshold: int


Source = Literal["network", "cache", "unavailable"]


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """Outcome of a remote read through the request adapter."""

    data: T | None
    stale: bool
    source: Source
    error: BaseException | None = None

    @property
    def available(self) -> bool:
        return self.source != "unavailable"

    @classmethod
    def fresh(cls, data: T) -> "FetchResult[T]":
        return cls(data=data, stale=False, source="network")

    @classmethod
    def cached(cls, data: T, error: BaseException | None = None) -> "FetchResult[T]":
        return cls(data=data, stale=True, source="cache", error=error)

    @classmethod
    def unavailable(cls, error: BaseException | None = None) -> "FetchResult[T]":
        return cls(
            data=None,
            stale=True,
            source="unavailable",
            error=error or NetworkUnavailable("unavailable offline"),
        )


@dataclass(slots=True)
class RefreshOutcome:
    """Result of one orchestrated refresh cycle."""

    trigger: str
    started_at: int
    finished_at: int | None = None
    succeeded: list[str] = field(default_factory=list)
    failures: dict[str, BaseException] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def raise_for_failures(self) -> None:
        """Raise PartialRefreshFailure if any callback failed."""
        if self.failures:
            raise PartialRefreshFailure(self.failures)
