"""Derived stores — values computed from other stores with dependency tracking.

A derived store wraps ``fn(get)``. Each evaluation clears the store's edges,
runs fn, and lets every ``get(handle)`` call record a fresh edge, so the set
of dependencies follows whatever fn actually read last time (an ``if`` inside
fn can grow or shrink it).

Derived stores are eager: when any dependency changes the value is recomputed
right away, listeners fire, and the change cascades depth-first to the
store's own dependents. A result identical to the previous one stops the
cascade. A raising fn is reported and the last good value is kept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from stashx import _anchor
from stashx._tracking import (
    activate,
    clear_dependencies,
    deactivate,
    is_active,
    notifying,
    propagate,
    take_dirty,
    tracking_getter,
)
from stashx.errors import ComputationError, report
from stashx.value import notify

if TYPE_CHECKING:
    from stashx._tracking import Getter

ComputeFn = Callable[["Getter"], object]


def create_derived(fn: ComputeFn) -> int:
    """Create a derived store and compute its first value. Returns its id."""
    derived_id = _anchor.new_id()
    _anchor.values[derived_id] = None
    _anchor.listeners[derived_id] = {}
    _anchor.compute_fns[derived_id] = fn
    _anchor.dependencies[derived_id] = {}
    _anchor.last_computed[derived_id] = None
    _anchor.runners[derived_id] = lambda: recompute(derived_id)

    activate(derived_id)
    try:
        ok, value = _evaluate(derived_id)
    finally:
        deactivate(derived_id)
    if ok:
        _anchor.values[derived_id] = value
        _anchor.last_computed[derived_id] = value
    return derived_id


def _evaluate(derived_id: int) -> tuple[bool, object]:
    clear_dependencies(derived_id)
    fn = _anchor.compute_fns[derived_id]
    try:
        return True, fn(tracking_getter(derived_id))
    except Exception as exc:
        report(ComputationError(derived_id, exc))
        return False, _anchor.last_computed[derived_id]


def recompute(derived_id: int) -> object:
    """Re-evaluate derived_id; on change notify and cascade. Returns the value.

    A store that is already evaluating or notifying (a cycle, or a listener
    reading the store it is being notified about) returns its current value.
    When a listener writes to one of the store's own sources, the store is
    re-evaluated and notified again before the change cascades, so the value
    dependents see is the settled one.
    """
    if is_active(derived_id):
        return _anchor.values[derived_id]

    activate(derived_id)
    try:
        ok, value = _evaluate(derived_id)
        if not ok or value is _anchor.last_computed[derived_id]:
            return _anchor.values[derived_id]

        _store_and_notify(derived_id, value)
        while take_dirty(derived_id):
            ok, value = _evaluate(derived_id)
            if not ok or value is _anchor.last_computed[derived_id]:
                break
            _store_and_notify(derived_id, value)
        propagate(derived_id)
        return _anchor.values[derived_id]
    finally:
        deactivate(derived_id)


def _store_and_notify(derived_id: int, value: object) -> None:
    _anchor.values[derived_id] = value
    _anchor.last_computed[derived_id] = value
    with notifying(derived_id):
        notify(derived_id)


def discard(derived_id: int) -> None:
    """Remove a derived store from the dependency map and registry."""
    clear_dependencies(derived_id)
    _anchor.dependencies.pop(derived_id, None)
    for table in (
        _anchor.values,
        _anchor.listeners,
        _anchor.compute_fns,
        _anchor.runners,
        _anchor.last_computed,
        _anchor.write_through,
    ):
        table.pop(derived_id, None)
