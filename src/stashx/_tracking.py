"""Dependency tracking engine — the heart of stashx.

A derived store's compute function receives a ``get`` capability. Every call
records the read store as a dependency of the derivation currently being
evaluated and adds the transposed edge ``source -> derived`` to the
dependency map. Before each evaluation the derivation's old edges are removed
from both directions, so the map only ever reflects the most recent reads.

Propagation: after a store changes, every dependent in the map is re-run,
depth-first and synchronously. A derivation reached again while its own
listeners are running (a listener wrote to one of its sources) is marked
dirty and re-evaluated once those listeners return. A derivation reached
again while it is evaluating or cascading is a cycle and is skipped.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable

from stashx import _anchor
from stashx._paths import get_at_path

if TYPE_CHECKING:
    from stashx.handle import Handle

    Getter = Callable[[Handle], object]

logger = logging.getLogger(__name__)

# Derived ids currently evaluating, notifying or cascading.
_active: set[int] = set()
# Subset of _active whose listeners are running.
_notifying: set[int] = set()
# Re-entered while notifying; must re-evaluate before cascading.
_dirty: set[int] = set()


def is_active(derived_id: int) -> bool:
    return derived_id in _active


def activate(derived_id: int) -> None:
    _active.add(derived_id)


def deactivate(derived_id: int) -> None:
    _active.discard(derived_id)
    _dirty.discard(derived_id)


@contextmanager
def notifying(derived_id: int):
    """Mark derived_id as running its listeners for the duration of the block."""
    _notifying.add(derived_id)
    try:
        yield
    finally:
        _notifying.discard(derived_id)


def take_dirty(derived_id: int) -> bool:
    """True (once) when a source of derived_id changed while it was notifying."""
    if derived_id in _dirty:
        _dirty.discard(derived_id)
        return True
    return False


def clear_dependencies(derived_id: int) -> None:
    """Drop every edge out of derived_id, in both directions."""
    deps = _anchor.dependencies.setdefault(derived_id, {})
    for source_id in deps:
        dependents = _anchor.dependents.get(source_id)
        if dependents is not None:
            dependents.pop(derived_id, None)
    deps.clear()


def track(source_id: int, derived_id: int) -> None:
    """Record that derived_id read source_id on its current evaluation."""
    _anchor.dependencies.setdefault(derived_id, {})[source_id] = None
    _anchor.dependents.setdefault(source_id, {})[derived_id] = None


def tracking_getter(derived_id: int) -> Getter:
    """The ``get`` capability handed to a compute function."""

    def get(handle: Handle) -> object:
        track(handle._id, derived_id)
        return get_at_path(_anchor.values[handle._id], handle._path)

    return get


def dependents_of(source_id: int) -> list[int]:
    return list(_anchor.dependents.get(source_id, ()))


def propagate(source_id: int, *, include_async: bool = True) -> None:
    """Re-run every derivation that read source_id on its last evaluation.

    The dependent list is snapshotted first: re-running a derivation rewrites
    its own edges while we iterate.
    """
    for derived_id in dependents_of(source_id):
        if not include_async and _anchor.is_async(derived_id):
            continue
        if derived_id in _notifying:
            logger.debug("Store %d changed while store %d was notifying, marking dirty", source_id, derived_id)
            _dirty.add(derived_id)
            continue
        if derived_id in _active:
            logger.warning(
                "Dependency cycle: store %d is already updating, skipping re-run from store %d",
                derived_id, source_id,
            )
            continue
        runner = _anchor.runners.get(derived_id)
        if runner is not None:
            runner()
