"""Tests for connectivity detection using mocked HTTP responses."""

import asyncio
from collections.abc import AsyncIterator

import httpx
import pytest
import respx

from offsync import (
    ConnectionQuality,
    NetworkMonitor,
    WebEnvironment,
    build_probe_url,
    ping,
)

BASE_URL = "https://api.test.dev/api"


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def env() -> WebEnvironment:
    return WebEnvironment.in_memory(online=True, connection_type="4g")


@pytest.fixture
async def monitor(env: WebEnvironment, clock) -> AsyncIterator[NetworkMonitor]:
    """Create a NetworkMonitor with an owned client."""
    mon = NetworkMonitor(env, BASE_URL, clock=clock)
    yield mon
    await mon.dispose()


class TestBuildProbeUrl:
    def test_appends_cache_busting_param(self) -> None:
        assert build_probe_url(BASE_URL, 123) == "https://api.test.dev/api?__ping=123"

    def test_keeps_existing_query(self) -> None:
        url = build_probe_url("https://api.test.dev/?team=1", 5)
        assert url is not None
        params = httpx.URL(url).params
        assert params["team"] == "1"
        assert params["__ping"] == "5"

    @pytest.mark.parametrize("base", ["", "not a url", "ftp://files.test.dev", "/relative/path"])
    def test_unusable_base_url(self, base: str) -> None:
        assert build_probe_url(base, 1) is None


class TestCheckNow:
    """check_now() probes once and never touches the observable status."""

    @respx.mock
    async def test_success(self, monitor: NetworkMonitor) -> None:
        route = respx.get(host="api.test.dev").mock(return_value=httpx.Response(204))

        assert await monitor.check_now() is True

        request = route.calls[0].request
        assert "__ping" in request.url.params
        assert request.headers["Cache-Control"] == "no-store"

    @respx.mock
    async def test_non_2xx_is_unreachable(self, monitor: NetworkMonitor) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(503))
        assert await monitor.check_now() is False

    @respx.mock
    async def test_transport_error_falls_back_to_platform_flag(
        self, monitor: NetworkMonitor, env: WebEnvironment
    ) -> None:
        respx.get(host="api.test.dev").mock(side_effect=httpx.ConnectError("refused"))
        assert await monitor.check_now() is True

    @respx.mock
    async def test_timeout_falls_back_to_platform_flag(self, monitor: NetworkMonitor) -> None:
        respx.get(host="api.test.dev").mock(side_effect=httpx.ConnectTimeout("slow"))
        assert await monitor.check_now() is True

    async def test_platform_offline_sends_nothing(
        self, monitor: NetworkMonitor, env: WebEnvironment
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            env.online.set(False)

            assert await monitor.check_now() is False
            assert route.call_count == 0

    async def test_invalid_base_url_uses_platform_flag(
        self, env: WebEnvironment, clock
    ) -> None:
        mon = NetworkMonitor(env, "not a url", clock=clock)
        assert await mon.check_now() is True
        await mon.dispose()

    @respx.mock
    async def test_does_not_change_status(self, monitor: NetworkMonitor) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(500))
        before = monitor.status.get()
        await monitor.check_now()
        assert monitor.status.get() == before

    @respx.mock
    async def test_concurrent_checks_share_one_probe(self, monitor: NetworkMonitor) -> None:
        route = respx.get(host="api.test.dev").mock(return_value=httpx.Response(200))

        results = await asyncio.gather(*(monitor.check_now() for _ in range(5)))

        assert results == [True] * 5
        assert route.call_count == 1

    async def test_different_timeouts_get_separate_probes(self, monitor: NetworkMonitor) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))

            results = await asyncio.gather(
                monitor.check_now(timeout_ms=1000),
                monitor.check_now(timeout_ms=1000),
                monitor.check_now(timeout_ms=50),
            )

            assert results == [True, True, True]
            assert route.call_count == 2


    async def test_short_timeout_not_held_by_slower_probe(self, monitor: NetworkMonitor) -> None:
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.5)
            return httpx.Response(200)

        with respx.mock(assert_all_called=False) as router:
            router.get(host="api.test.dev").mock(side_effect=slow)
            long_check = asyncio.ensure_future(monitor.check_now(timeout_ms=5000))
            await settle()

            loop = asyncio.get_running_loop()
            started = loop.time()
            # Times out on its own and falls back to the platform flag
            assert await monitor.check_now(timeout_ms=50) is True
            assert loop.time() - started < 0.3

            long_check.cancel()
            await asyncio.gather(long_check, return_exceptions=True)


class TestRefreshStatus:
    """Active checks update the observable status."""

    @respx.mock
    async def test_success_marks_online(self, monitor: NetworkMonitor, clock) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(200))

        assert await monitor.refresh_status() is True

        status = monitor.status.get()
        assert status.is_online
        assert not status.is_checking
        assert status.last_checked == clock.now
        assert status.last_online == clock.now
        assert status.connection_quality is ConnectionQuality.FAST
        assert status.retry_count == 0

    @respx.mock
    async def test_offline_after_two_consecutive_failures(
        self, monitor: NetworkMonitor
    ) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(502))

        assert await monitor.refresh_status() is False
        assert monitor.is_online  # one failure is tolerated
        assert not monitor.status.get().is_checking

        assert await monitor.refresh_status() is False
        status = monitor.status.get()
        assert not status.is_online
        assert status.retry_count == 1
        assert status.connection_quality is ConnectionQuality.UNKNOWN

    @respx.mock
    async def test_success_resets_failure_count(
        self, monitor: NetworkMonitor, clock
    ) -> None:
        route = respx.get(host="api.test.dev")
        route.side_effect = [
            httpx.Response(502),
            httpx.Response(200),
            httpx.Response(502),
        ]

        await monitor.refresh_status()
        clock.advance(1000)
        await monitor.refresh_status()
        await monitor.refresh_status()

        assert monitor.is_online
        assert monitor.status.get().last_online == clock.now

    @respx.mock
    async def test_recovery_after_offline(self, monitor: NetworkMonitor, clock) -> None:
        route = respx.get(host="api.test.dev")
        route.side_effect = [
            httpx.ConnectError("down"),
            httpx.ConnectError("down"),
            httpx.Response(200),
        ]

        await monitor.refresh_status()
        await monitor.refresh_status()
        assert not monitor.is_online

        clock.advance(5000)
        assert await monitor.refresh_status() is True
        status = monitor.status.get()
        assert status.is_online
        assert status.retry_count == 0
        assert status.last_online == clock.now

    async def test_platform_offline_skips_probe(
        self, monitor: NetworkMonitor, env: WebEnvironment
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            env.online.set(False)

            assert await monitor.refresh_status() is False
            assert not monitor.is_online
            assert route.call_count == 0


class TestPlatformEvents:
    """Passive platform events, forwarded through the environment."""

    async def test_platform_offline_applies_immediately(
        self, monitor: NetworkMonitor, env: WebEnvironment
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            monitor.start()

            env.online.set(False)
            assert not monitor.is_online

            await settle()
            assert not monitor.is_online
            await monitor.dispose()

    @respx.mock
    async def test_platform_online_applies_before_probe(self, clock) -> None:
        env = WebEnvironment.in_memory(online=False)
        mon = NetworkMonitor(env, BASE_URL, clock=clock)
        route = respx.get(host="api.test.dev").mock(return_value=httpx.Response(200))
        mon.start()
        assert not mon.is_online

        env.online.set(True)
        assert mon.is_online
        assert route.call_count == 0

        await settle()
        assert mon.is_online
        assert route.call_count >= 1
        await mon.dispose()

    async def test_connection_type_change(
        self, monitor: NetworkMonitor, env: WebEnvironment
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            monitor.start()

            env.connection_type.set("3g")
            assert monitor.status.get().connection_quality is ConnectionQuality.SLOW
            await monitor.dispose()

    def test_initial_status_follows_platform_flag(self, clock) -> None:
        mon = NetworkMonitor(WebEnvironment.in_memory(online=False), BASE_URL, clock=clock)
        status = mon.status.get()
        assert not status.is_online
        assert status.is_checking
        assert status.last_online is None


class TestHostEvents:
    """Focus and visibility changes trigger an immediate active check."""

    async def test_focus_runs_immediate_check(self, monitor: NetworkMonitor) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))

            monitor.handle_focus()
            await settle(50)

            assert route.call_count == 1
            assert monitor.status.get().last_checked is not None

    async def test_becoming_visible_runs_immediate_check(
        self, monitor: NetworkMonitor
    ) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))

            monitor.handle_visibility_change(True)
            await settle(50)
            assert route.call_count == 0

            monitor.handle_visibility_change(False)
            await settle(50)
            assert route.call_count == 1

    async def test_visible_check_detects_lost_server(self, monitor: NetworkMonitor) -> None:
        with respx.mock(assert_all_called=False) as router:
            router.get(host="api.test.dev").mock(side_effect=httpx.ConnectError("down"))

            monitor.handle_visibility_change(False)
            await settle(50)
            monitor.handle_focus()
            await settle(50)

            assert not monitor.is_online

    async def test_ignored_after_dispose(self, monitor: NetworkMonitor) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            await monitor.dispose()

            monitor.handle_focus()
            monitor.handle_visibility_change(False)
            await settle(50)

            assert route.call_count == 0


class TestHeartbeat:
    @respx.mock
    async def test_polls_while_online(self, env: WebEnvironment, clock) -> None:
        route = respx.get(host="api.test.dev").mock(return_value=httpx.Response(200))
        mon = NetworkMonitor(env, BASE_URL, clock=clock, online_poll_ms=20)
        mon.start()

        await asyncio.sleep(0.15)

        assert route.call_count >= 3
        await mon.dispose()

    @respx.mock
    async def test_fake_online_detected(self, env: WebEnvironment, clock) -> None:
        """Platform says online but the server never answers."""
        respx.get(host="api.test.dev").mock(side_effect=httpx.ConnectError("no route"))
        mon = NetworkMonitor(env, BASE_URL, clock=clock, offline_poll_ms=20)
        mon.start()

        await asyncio.sleep(0.15)

        assert not mon.is_online
        assert env.online.get()
        await mon.dispose()

    async def test_dispose_stops_polling(self, env: WebEnvironment, clock) -> None:
        with respx.mock(assert_all_called=False) as router:
            route = router.get(host="api.test.dev").mock(return_value=httpx.Response(200))
            mon = NetworkMonitor(env, BASE_URL, clock=clock, online_poll_ms=20)
            mon.start()
            await mon.dispose()

            calls = route.call_count
            await asyncio.sleep(0.08)
            assert route.call_count == calls
            assert await mon.refresh_status() is False


class TestPing:
    @respx.mock
    async def test_ok(self) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(200))
        result = await ping(BASE_URL)
        assert result.ok
        assert result.ping_ms is not None and result.ping_ms >= 0
        assert result.error is None

    @respx.mock
    async def test_http_error(self) -> None:
        respx.get(host="api.test.dev").mock(return_value=httpx.Response(500))
        result = await ping(BASE_URL)
        assert not result.ok
        assert result.ping_ms is None
        assert "500" in (result.error or "")

    @respx.mock
    async def test_timeout(self) -> None:
        respx.get(host="api.test.dev").mock(side_effect=httpx.ReadTimeout("slow"))
        result = await ping(BASE_URL)
        assert result.error == "Timeout"

    async def test_invalid_url(self) -> None:
        result = await ping("nope")
        assert not result.ok
        assert result.error == "Invalid URL"
