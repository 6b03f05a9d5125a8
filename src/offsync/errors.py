"""Exception hierarchy for the sync engine.

Most of these are recovered locally (cache fallback, miss, no-op refresh)
and never reach the caller. They exist so the recovery paths can be logged,
carried on results, and tested by type.
"""

from __future__ import annotations


class OfflineSyncError(Exception):
    """Base class for all offsync errors."""


class NetworkUnavailable(OfflineSyncError):
    """No network attempt was made because the monitor reports offline."""


class ProbeTimeout(OfflineSyncError):
    """The connectivity probe did not answer within its timeout."""


class FetchFailed(OfflineSyncError):
    """A remote call failed while online (non-2xx, transport error, timeout)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """4xx responses are final, except 429 Too Many Requests."""
        if self.status_code is None:
            return True
        if self.status_code == 429:
            return True
        return not 400 <= self.status_code < 500


class CacheMiss(OfflineSyncError):
    """Key absent, or expired with stale reads disallowed."""


class CacheCorrupt(OfflineSyncError):
    """A stored record could not be decoded. Treated as a miss."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt cache record for {key!r}: {reason}")
        self.key = key


class PartialRefreshFailure(OfflineSyncError):
    """One or more refresh callbacks failed during a completed cycle."""

    def __init__(self, failures: dict[str, BaseException]) -> None:
        names = ", ".join(sorted(failures))
        super().__init__(f"Refresh callbacks failed: {names}")
        self.failures = dict(failures)


class StorageError(OfflineSyncError):
    """The storage backend failed to read or write."""
