"""Value stores — a mutable value slot plus its change listeners.

All state lives in _anchor; a store is nothing more than its id. Writes go
through ``write``: resolve the current value at the path, apply an updater,
short-circuit on identity, copy-on-write the containers along the path, fire
listeners in registration order, then re-run dependent derivations.

Thread safety: call set_scheduler() once from the main thread. After that,
any write from a background thread is marshaled to it. Main-thread writes
remain synchronous.
"""

from __future__ import annotations

import threading
from typing import Callable, Sequence

from stashx import _anchor
from stashx._paths import Key, get_at_path, set_at_path
from stashx._tracking import propagate
from stashx.errors import ListenerError, report

Listener = Callable[[], None]
Unsubscribe = Callable[[], None]

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler: Callable[[Callable[[], None]], object] | None) -> None:
    """Set the global thread scheduler for cross-thread mutations.

    Call once from the main/UI thread:
        stashx.set_scheduler(app.call_from_thread)

    After this, writes and async results arriving on another thread are
    handed to scheduler and applied on this one. Passing None clears it.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def has_scheduler() -> bool:
    return _scheduler is not None


def dispatch(fn: Callable[[], None]) -> None:
    """Run fn on the scheduler thread; directly when already there or unset."""
    if _scheduler is not None and threading.current_thread() is not _scheduler_thread:
        _scheduler(fn)
    else:
        fn()


def create_store(initial: object) -> int:
    """Create a Value Store holding initial. Returns its id."""
    store_id = _anchor.new_id()
    _anchor.values[store_id] = initial
    _anchor.listeners[store_id] = {}
    return store_id


def read(store_id: int, path: Sequence[Key] = ()) -> object:
    """Current value at path (the whole value when path is empty)."""
    value = _anchor.values[store_id]
    return get_at_path(value, path) if path else value


def write(store_id: int, path: Sequence[Key], value_or_updater: object) -> None:
    """Replace the value at path and notify.

    A callable is applied to the current value at path. If the result is the
    current object itself nothing happens: no copy, no listeners, no cascade.
    From a background thread the write is marshaled through the scheduler.
    """
    dispatch(lambda: _write_direct(store_id, path, value_or_updater))


def _write_direct(store_id: int, path: Sequence[Key], value_or_updater: object) -> None:
    current = read(store_id, path)
    if callable(value_or_updater):
        next_value = value_or_updater(current)
    else:
        next_value = value_or_updater

    if next_value is current:
        return

    if path:
        _anchor.values[store_id] = set_at_path(_anchor.values[store_id], path, next_value)
    else:
        _anchor.values[store_id] = next_value

    notify(store_id)
    propagate(store_id)


def notify(store_id: int) -> None:
    """Invoke every listener of store_id, in registration order.

    Listeners added or removed while notifying take effect next time.
    A raising listener is reported and does not stop the others.
    """
    for callback in list(_anchor.listeners[store_id].values()):
        try:
            callback()
        except Exception as exc:
            report(ListenerError(store_id, exc))


def add_listener(store_id: int, callback: Listener) -> Unsubscribe:
    """Register callback on store_id. Returns a function that removes it.

    Each registration gets its own token, so registering the same callable
    twice needs two unsubscribes, and unsubscribing twice is harmless.
    """
    token = _anchor.new_token()
    _anchor.listeners[store_id][token] = callback

    def _unsubscribe() -> None:
        _anchor.listeners[store_id].pop(token, None)

    return _unsubscribe


def listener_count(store_id: int) -> int:
    """Number of registered listeners. Useful for testing."""
    return len(_anchor.listeners[store_id])
