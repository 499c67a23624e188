"""Minimal named-event publish/subscribe bus.

Listeners are called synchronously, in subscription order. Each event keeps an
insertion-ordered dict of listeners, so subscribing the same callable twice
registers it once.
"""

from __future__ import annotations

from typing import Callable

Listener = Callable[..., object]
Unsubscribe = Callable[[], None]


class Emitter:
    """Named-event pub/sub with unsubscribe handles and bulk clear."""

    __slots__ = ("_listeners",)

    def __init__(self) -> None:
        self._listeners: dict[str, dict[Listener, None]] = {}

    def on(self, event: str, listener: Listener) -> Unsubscribe:
        """Register a listener for event. Returns a function that removes it."""
        listeners = self._listeners.setdefault(event, {})
        listeners[listener] = None

        def _unsubscribe() -> None:
            listeners.pop(listener, None)  # idempotent

        return _unsubscribe

    def emit(self, event: str, *args) -> None:
        """Call every listener of event with args."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        # Snapshot: listeners may unsubscribe (or reset other states) while notified.
        for listener in list(listeners):
            listener(*args)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners = {}
