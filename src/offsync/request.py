"""Cache-aware remote reads.

Policy for every read, in order:
1. Offline: serve the cached value (expired allowed) or report
   "unavailable offline". The network is never attempted.
2. Online: call once. On success write through to the cache and touch the
   per-key freshness record.
3. Online failure: serve the cached value (expired allowed), or raise the
   FetchFailed if there is nothing cached.

``read_with_retry`` adds exponential backoff in front of step 3 and is
meant for explicit retry paths (a "retry" button), not the default read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, TypeVar

import httpx

from offsync.cache import CacheStore
from offsync.config import ACTIVE_SESSION_VALIDITY
from offsync.duration import parse_duration
from offsync.errors import FetchFailed, NetworkUnavailable, StorageError
from offsync.freshness import FreshnessTracker
from offsync.keys import cache_key
from offsync.network import NetworkMonitor
from offsync.types import Clock, Duration, FetchResult, now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetch = Callable[[], Awaitable[T]]


def backoff_delay(attempt: int, base_ms: int, max_ms: int | None = None) -> int:
    """Delay before retry number ``attempt`` (0-based): base * 2**attempt."""
    delay = base_ms * 2**attempt
    if max_ms is not None:
        delay = min(delay, max_ms)
    return delay


class RequestAdapter:
    """Wraps remote calls with the offline/cache/freshness policy."""

    def __init__(
        self,
        cache: CacheStore,
        tracker: FreshnessTracker,
        monitor: NetworkMonitor,
        *,
        default_ttl: Duration | None = None,
        timeout: Duration = "30s",
        clock: Clock = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._tracker = tracker
        self._monitor = monitor
        self._default_ttl = default_ttl
        self._timeout = parse_duration(timeout)
        self._clock = clock
        self._sleep = sleep

    async def _call(self, fn: Fetch[T], timeout: Duration | None) -> T:
        """Run fn under a timeout, normalizing every failure to FetchFailed."""
        timeout_ms = parse_duration(timeout) if timeout is not None else self._timeout
        try:
            return await asyncio.wait_for(fn(), timeout=timeout_ms / 1000)
        except FetchFailed:
            raise
        except asyncio.TimeoutError as e:
            raise FetchFailed(f"Request timed out after {timeout_ms}ms") from e
        except httpx.HTTPStatusError as e:
            raise FetchFailed(str(e), status_code=e.response.status_code) from e
        except Exception as e:
            raise FetchFailed(f"Request failed: {e}") from e

    async def _store(self, key: str, data: T, ttl: Duration | None) -> FetchResult[T]:
        """Write through to the cache. A failed write never loses the fetched data."""
        try:
            await self._cache.set(key, data, ttl if ttl is not None else self._default_ttl)
        except (StorageError, OSError, TypeError, ValueError) as e:
            logger.warning("Could not cache %s: %s", key, e)
        self._tracker.touch(key)
        return FetchResult.fresh(data)

    async def _offline(self, key: str) -> FetchResult[Any]:
        cached = await self._cache.get_entry(key, allow_stale=True)
        if cached is None:
            logger.debug("Offline with no cached value for %s", key)
            return FetchResult.unavailable(NetworkUnavailable(f"{key} unavailable offline"))
        return FetchResult.cached(cached.data)

    async def _fallback(self, key: str, error: FetchFailed) -> FetchResult[Any]:
        cached = await self._cache.get_entry(key, allow_stale=True)
        if cached is None:
            raise error
        logger.warning("Request for %s failed (%s); using cached data", key, error)
        return FetchResult.cached(cached.data, error)

    async def read(
        self,
        key: str,
        fn: Fetch[T],
        *,
        ttl: Duration | None = None,
        timeout: Duration | None = None,
    ) -> FetchResult[T]:
        """Read through the cache.

        Raises FetchFailed only when online, the call failed, and nothing
        is cached for key.
        """
        if not self._monitor.is_online:
            return await self._offline(key)
        try:
            data = await self._call(fn, timeout)
        except FetchFailed as e:
            return await self._fallback(key, e)
        return await self._store(key, data, ttl)

    async def read_with_retry(
        self,
        key: str,
        fn: Fetch[T],
        *,
        max_attempts: int = 3,
        base_delay: Duration = "1s",
        max_delay: Duration | None = None,
        ttl: Duration | None = None,
        timeout: Duration | None = None,
    ) -> FetchResult[T]:
        """Like read(), with exponential backoff between attempts.

        4xx responses other than 429 are not retried. Connectivity is
        rechecked before every retry; if it dropped, the loop stops and the
        offline policy applies.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not self._monitor.is_online:
            return await self._offline(key)

        base_ms = parse_duration(base_delay)
        max_ms = parse_duration(max_delay) if max_delay is not None else None
        last_error: FetchFailed | None = None

        for attempt in range(max_attempts):
            if attempt > 0:
                await self._sleep(backoff_delay(attempt - 1, base_ms, max_ms) / 1000)
                if not self._monitor.is_online or not await self._monitor.check_now():
                    logger.info("Connectivity lost; abandoning retries for %s", key)
                    return await self._offline(key)
            try:
                data = await self._call(fn, timeout)
            except FetchFailed as e:
                last_error = e
                if not e.retryable:
                    break
                logger.debug("Attempt %d for %s failed: %s", attempt + 1, key, e)
                continue
            return await self._store(key, data, ttl)

        assert last_error is not None
        return await self._fallback(key, last_error)

    async def read_active(
        self,
        key: str,
        fn: Fetch[T],
        *,
        validity: Duration = ACTIVE_SESSION_VALIDITY,
        invalidate_expired: bool = False,
        ttl: Duration | None = None,
        timeout: Duration | None = None,
    ) -> FetchResult[T]:
        """Read a "currently running" record (e.g. an active timer).

        Online, a 404 means there is no active record: the cached one is
        evicted and data is None. When falling back to the cache, the record
        is only shown while younger than ``validity``; past that it is
        hidden, and evicted too when ``invalidate_expired`` is set.
        """
        validity_ms = parse_duration(validity)

        if self._monitor.is_online:
            try:
                data = await self._call(fn, timeout)
            except FetchFailed as e:
                if e.status_code == 404:
                    logger.debug("No active record for %s; clearing cache", key)
                    await self._cache.delete(key)
                    self._tracker.touch(key)
                    return FetchResult(data=None, stale=False, source="network")
                result = await self._active_from_cache(key, validity_ms, invalidate_expired, e)
                if result is None:
                    raise
                return result
            return await self._store(key, data, ttl)

        result = await self._active_from_cache(key, validity_ms, invalidate_expired, None)
        if result is None:
            return FetchResult.unavailable(NetworkUnavailable(f"{key} unavailable offline"))
        return result

    async def _active_from_cache(
        self,
        key: str,
        validity_ms: int,
        invalidate_expired: bool,
        error: FetchFailed | None,
    ) -> FetchResult[Any] | None:
        cached = await self._cache.get_entry(key, allow_stale=True)
        if cached is None:
            return None
        if cached.age(self._clock()) > validity_ms:
            logger.info("Cached active record %s is past its validity window", key)
            if invalidate_expired:
                await self._cache.delete(key)
            return None
        return FetchResult.cached(cached.data, error)

    async def mutate(
        self,
        fn: Fetch[T],
        *,
        invalidate_prefixes: Iterable[str] = (),
        timeout: Duration | None = None,
    ) -> T:
        """Run a write. Blocked while offline; evicts prefixes on success."""
        if not self._monitor.is_online:
            raise NetworkUnavailable("Writes are unavailable while offline")
        result = await self._call(fn, timeout)
        for prefix in invalidate_prefixes:
            await self._cache.evict_prefix(prefix)
        return result


class HttpSource:
    """JSON-over-HTTP remote for use inside RequestAdapter reads."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: Duration = "30s",
        on_unauthorized: Callable[[], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Token {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=parse_duration(timeout) / 1000,
            transport=transport,
        )
        self._on_unauthorized = on_unauthorized

    def set_base_url(self, base_url: str) -> None:
        self._client.base_url = httpx.URL(base_url)

    def set_token(self, token: str | None) -> None:
        if token:
            self._client.headers["Authorization"] = f"Token {token}"
        else:
            self._client.headers.pop("Authorization", None)

    @staticmethod
    def _params(params: Mapping[str, Any] | None) -> dict[str, Any]:
        return {k: v for k, v in (params or {}).items() if v is not None}

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send a request and decode the JSON body.

        Raises FetchFailed carrying the status code on non-2xx responses.
        A 401 also invokes ``on_unauthorized``.
        """
        try:
            response = await self._client.request(
                method, path, params=self._params(params), json=json
            )
        except httpx.HTTPError as e:
            raise FetchFailed(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            logger.warning("Received 401 Unauthorized for %s", path)
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise FetchFailed("Authentication failed", status_code=401)
        if not response.is_success:
            raise FetchFailed(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise FetchFailed(f"{method} {path} returned invalid JSON") from e

    async def get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    def cache_key_for(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        """Cache key covering the path and every non-None query parameter."""
        return cache_key(path.strip("/"), self._params(params))

    async def aclose(self) -> None:
        await self._client.aclose()
