"""Minimal observable value with synchronous subscribers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Observable(Generic[T]):
    """Holds a current value and notifies subscribers when it changes.

    Any consumer can read the current value synchronously with ``get()``.
    Subscribers are called in subscription order; one raising does not
    stop the others.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: dict[int, Callable[[T], None]] = {}
        self._next_id = 0

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value; subscribers are notified only on change."""
        if value == self._value:
            return
        self._value = value
        self._notify()

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, fn: Callable[[T], None], *, emit_current: bool = True) -> Unsubscribe:
        """Register a subscriber. Returns a function that removes it."""
        sub_id = self._next_id
        self._next_id += 1
        self._subscribers[sub_id] = fn
        if emit_current:
            self._call(fn, self._value)

        def unsubscribe() -> None:
            self._subscribers.pop(sub_id, None)

        return unsubscribe

    def _notify(self) -> None:
        value = self._value
        for fn in list(self._subscribers.values()):
            self._call(fn, value)

    @staticmethod
    def _call(fn: Callable[[T], None], value: T) -> None:
        try:
            fn(value)
        except Exception:
            logger.exception("Subscriber %r failed", fn)
