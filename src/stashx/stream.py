"""Push-based value stream with a debounce operator.

Persistence feeds every change of a persisted store into a stream and writes
from the debounced child, so a burst of synchronous sets becomes one write of
the latest value.
"""

from __future__ import annotations

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Disposer = Callable[[], None]


class EventStream(Generic[T]):
    """Push-based event stream."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        for cb in list(self._subscribers):
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def debounce(self, seconds: float) -> EventStream[T]:
        """Coalesce rapid events — emit the last one after a quiet period.

        Uses threading.Timer (daemon=True). Each new event cancels the
        previous timer, so only the last event in a burst fires.
        """
        child: EventStream[T] = EventStream()
        timer_lock = threading.Lock()
        timer_ref: list[threading.Timer | None] = [None]

        def _fire(value: T) -> None:
            with timer_lock:
                if timer_ref[0] is not threading.current_thread():
                    return  # superseded after this timer started
                timer_ref[0] = None
            child.emit(value)

        def _on_event(value: T) -> None:
            with timer_lock:
                if timer_ref[0] is not None:
                    timer_ref[0].cancel()
                t = threading.Timer(seconds, _fire, args=[value])
                t.daemon = True
                timer_ref[0] = t
                t.start()

        self.subscribe(_on_event)
        return child
