"""Tests for freshness tracking."""

import math

import pytest

from offsync import GLOBAL_KEY, FreshnessTracker, derive_global_view

HOUR = 60 * 60 * 1000
MINUTE = 60 * 1000


class TestFreshnessTracker:
    """Tests for per-key records."""

    def test_unrecorded_key_is_stale(self, tracker: FreshnessTracker) -> None:
        assert tracker.age("projects") == math.inf
        assert tracker.is_stale("projects")
        assert not tracker.is_fresh("projects")
        assert not tracker.is_outdated("projects")

    def test_stale_exactly_at_threshold(self, tracker: FreshnessTracker, clock) -> None:
        tracker.touch("projects")
        clock.advance(HOUR - 1)
        assert not tracker.is_stale("projects")
        clock.advance(1)
        assert tracker.is_stale("projects")

    def test_staleness_only_grows_without_touch(self, tracker: FreshnessTracker, clock) -> None:
        tracker.touch("projects")
        seen = []
        for _ in range(5):
            clock.advance(20 * MINUTE)
            seen.append(tracker.is_stale("projects"))
        assert seen == sorted(seen)
        assert seen[-1]

    def test_touch_makes_fresh_again(self, tracker: FreshnessTracker, clock) -> None:
        tracker.touch("projects")
        clock.advance(2 * HOUR)
        tracker.touch("projects")
        assert tracker.is_fresh("projects")
        assert tracker.age("projects") == 0

    def test_outdated_band(self, tracker: FreshnessTracker, clock) -> None:
        tracker.touch("projects")
        clock.advance(5 * MINUTE - 1)
        assert not tracker.is_outdated("projects")
        clock.advance(1)
        assert tracker.is_outdated("projects")
        assert tracker.outdated_keys() == ["projects"]
        clock.advance(HOUR)
        assert not tracker.is_outdated("projects")
        assert tracker.stale_keys() == ["projects"]

    def test_records_observable_notifies(self, tracker: FreshnessTracker, clock) -> None:
        seen: list[dict[str, int]] = []
        tracker.records.subscribe(seen.append, emit_current=False)
        tracker.touch("user")
        assert seen == [{"user": clock.now}]

    def test_thresholds_validated(self) -> None:
        with pytest.raises(ValueError, match="outdated_threshold"):
            FreshnessTracker(stale_threshold="5m", outdated_threshold="1h")

    def test_global_view_reads_global_record(self, tracker: FreshnessTracker, clock) -> None:
        tracker.touch("projects")
        view = tracker.global_view(is_refreshing=False, is_online=True)
        assert view.last_update is None
        assert view.is_stale

        tracker.touch(GLOBAL_KEY)
        view = tracker.global_view(is_refreshing=True, is_online=True)
        assert view.last_update == clock.now
        assert view.is_fresh
        assert view.is_refreshing


class TestDeriveGlobalView:
    """The derived view is a pure function of its inputs."""

    def test_never_updated(self) -> None:
        view = derive_global_view(None, False, False, now=1000)
        assert view.age == math.inf
        assert view.is_stale
        assert not view.is_fresh
        assert not view.is_outdated
        assert not view.is_online

    def test_fresh_outdated_stale(self) -> None:
        kwargs = {"stale_threshold": 100, "outdated_threshold": 10}

        fresh = derive_global_view(1000, False, True, now=1005, **kwargs)
        assert fresh.is_fresh and not fresh.is_outdated

        outdated = derive_global_view(1000, False, True, now=1010, **kwargs)
        assert outdated.is_fresh and outdated.is_outdated

        stale = derive_global_view(1000, False, True, now=1100, **kwargs)
        assert stale.is_stale and not stale.is_outdated

    def test_same_inputs_same_view(self) -> None:
        a = derive_global_view(500, True, True, now=900)
        b = derive_global_view(500, True, True, now=900)
        assert a == b
