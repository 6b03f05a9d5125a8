"""Duration parsing utilities."""

import re

from offsync.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

# The refresh intervals a user may pick. "manual" disables the timer.
REFRESH_INTERVALS: dict[str, int] = {
    "manual": 0,
    "30s": 30_000,
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "30m": 1_800_000,
    "1h": 3_600_000,
}


def parse_duration(duration: Duration) -> int:
    """Parse duration string to milliseconds. Passthrough if already int."""
    if isinstance(duration, int):
        return duration

    match = _DURATION_PATTERN.match(duration)
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


def parse_refresh_interval(interval: Duration) -> int:
    """Resolve a user-selected refresh interval to milliseconds.

    Only the values in REFRESH_INTERVALS are accepted, either by name
    ("5m", "manual") or by their millisecond value.
    """
    if isinstance(interval, str) and interval in REFRESH_INTERVALS:
        return REFRESH_INTERVALS[interval]
    if isinstance(interval, int) and interval in REFRESH_INTERVALS.values():
        return interval
    raise ValueError(f"Unsupported refresh interval: {interval!r}")
