"""Cache key construction."""

import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode


def _encode(value: Any) -> str:
    # JSON keeps types apart: "true" vs true, ["a,b"] vs ["a", "b"], "20" vs 20
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def cache_key(namespace: str, filters: Mapping[str, Any] | None = None, **extra: Any) -> str:
    """Build a cache key that incorporates every filter affecting the result.

    Filters with a value of None are omitted (they do not constrain the
    query); all others are JSON-encoded, sorted by name and URL-encoded, so
    two distinct filter sets never share a key and argument order never
    matters.

    Example:
        cache_key("time_entries:filtered", ordering="-start_time", limit=20)
        # "time_entries:filtered:limit=20&ordering=%22-start_time%22"
    """
    merged = {**(filters or {}), **extra}
    params = sorted(
        (name, _encode(value)) for name, value in merged.items() if value is not None
    )
    if not params:
        return namespace
    return f"{namespace}:{urlencode(params)}"
