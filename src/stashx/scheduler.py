"""Async derived stores — loading/error/success state around a coroutine.

An async derived store reads an input through a tracked ``get`` (so it sits
in the dependency map like any derived store) and feeds it to an ``async``
function. Its value is ``{"loading": True}`` while a run is in flight, the
result once it succeeds, or ``{"error": True, "message": ..., "status": ...}``
once it fails.

Running guard: at most one run per store is in flight. An input change that
arrives meanwhile is remembered; when the current run settles (its result is
applied, not discarded) a single follow-up run starts with the newest input.

Runs are asyncio tasks on the caller's running loop. Callers without one
can register a loop with set_event_loop(); runs are then submitted to it
thread-safely, and their results come back through the scheduler set with
set_scheduler() so listeners and cascades run on the owning thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from stashx import _anchor
from stashx._paths import Key
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
from stashx.errors import AsyncComputationError, ComputationError, report
from stashx.value import dispatch, has_scheduler, notify, write

logger = logging.getLogger(__name__)

AsyncFn = Callable[[object], Awaitable[object]]

NO_LOOP_MESSAGE = "no event loop available"

# ─── Event loop selection ────────────────────────────────────────────────────
_loop: asyncio.AbstractEventLoop | None = None


def set_event_loop(loop: asyncio.AbstractEventLoop | None) -> None:
    """Set the fallback loop for async runs started outside a running loop.

    Call once at startup when mutations can happen from plain synchronous
    code (a CLI, a GUI callback) while asyncio runs elsewhere:
        stashx.set_event_loop(loop)
        stashx.set_scheduler(app.call_from_thread)
    Without a scheduler, results settle on the loop's own thread. Passing
    None clears it.
    """
    global _loop
    _loop = loop


def loading() -> dict:
    return {"loading": True}


def error_object(exc: BaseException) -> dict:
    """The structured error value stored for a failed run."""
    message = getattr(exc, "message", None) or str(exc) or "An error occurred"
    status = getattr(exc, "status", None) or "error"
    return {"error": True, "message": message, "status": status}


def _submit(coro) -> bool:
    """Schedule coro on a loop. False when no loop is available."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None:
        task = loop.create_task(coro)
    elif _loop is not None and not _loop.is_closed():
        if not has_scheduler():
            logger.warning("Async run submitted to a background loop without set_scheduler(); it settles off-thread")
        task = asyncio.run_coroutine_threadsafe(coro, _loop)
    else:
        coro.close()
        return False

    _anchor.tasks.add(task)
    task.add_done_callback(_anchor.tasks.discard)
    return True


# ─── Async derived stores ────────────────────────────────────────────────────


def create_async_derived(input_fn: Callable, fn: AsyncFn) -> int:
    """Create an async derived store over input_fn(get). Returns its id.

    The first run starts immediately.
    """
    store_id = _anchor.new_id()
    _anchor.values[store_id] = loading()
    _anchor.listeners[store_id] = {}
    _anchor.compute_fns[store_id] = input_fn
    _anchor.dependencies[store_id] = {}
    _anchor.last_computed[store_id] = None
    _anchor.async_fns[store_id] = fn
    _anchor.running[store_id] = False
    _anchor.runners[store_id] = lambda: check_input(store_id)

    activate(store_id)
    try:
        first_input = _read_input(store_id)
    finally:
        deactivate(store_id)
    _anchor.latest_inputs[store_id] = first_input
    _start(store_id, first_input)
    return store_id


def _read_input(store_id: int) -> object:
    clear_dependencies(store_id)
    input_fn = _anchor.compute_fns[store_id]
    try:
        return input_fn(tracking_getter(store_id))
    except Exception as exc:
        report(ComputationError(store_id, exc))
        return _anchor.latest_inputs.get(store_id)


def check_input(store_id: int) -> object:
    """Re-read the input; start a run when it changed and none is in flight.

    Returns the store's current value.
    """
    if is_active(store_id):
        return _anchor.values[store_id]

    activate(store_id)
    try:
        current = _read_input(store_id)
    finally:
        deactivate(store_id)
    _anchor.latest_inputs[store_id] = current

    if _anchor.running[store_id]:
        logger.debug("Store %d: input changed during a run, deferring", store_id)
    elif current is not _anchor.last_inputs.get(store_id):
        _start(store_id, current)
    return _anchor.values[store_id]


def refresh(store_id: int) -> bool:
    """Run again with the current input. Dropped while a run is in flight.

    Returns True when a run was started.
    """
    if _anchor.running[store_id]:
        logger.debug("Store %d: refresh ignored, a run is in flight", store_id)
        return False
    activate(store_id)
    try:
        current = _read_input(store_id)
    finally:
        deactivate(store_id)
    _anchor.latest_inputs[store_id] = current
    _start(store_id, current)
    return True


def _start(store_id: int, input_value: object) -> None:
    _anchor.last_inputs[store_id] = input_value
    _anchor.running[store_id] = True
    _set_and_notify(store_id, loading())

    logger.debug("Store %d: starting async run", store_id)
    if not _submit(_execute(store_id, input_value)):
        exc = RuntimeError(NO_LOOP_MESSAGE)
        report(AsyncComputationError(store_id, exc))
        _settle(store_id, error_object(exc))


async def _execute(store_id: int, input_value: object) -> None:
    fn = _anchor.async_fns[store_id]
    try:
        result = await fn(input_value)
    except asyncio.CancelledError:
        dispatch(lambda: _cancelled(store_id))
        raise
    except Exception as exc:
        report(AsyncComputationError(store_id, exc))
        result = error_object(exc)
    dispatch(lambda: _settle(store_id, result))


def _cancelled(store_id: int) -> None:
    _anchor.running[store_id] = False


def _settle(store_id: int, result: object) -> None:
    logger.debug("Store %d: async run settled", store_id)
    _anchor.last_computed[store_id] = result
    _anchor.running[store_id] = False
    _set_and_notify(store_id, result)

    latest = _anchor.latest_inputs.get(store_id)
    if latest is not _anchor.last_inputs.get(store_id):
        _start(store_id, latest)


def _set_and_notify(store_id: int, value: object) -> None:
    """Store value, notify, cascade to synchronous dependents only."""
    _anchor.values[store_id] = value
    rerun = False
    activate(store_id)
    try:
        with notifying(store_id):
            notify(store_id)
        rerun = take_dirty(store_id)
        propagate(store_id, include_async=False)
    finally:
        deactivate(store_id)
    if rerun:
        check_input(store_id)


# ─── One-shot loads into a writable store ────────────────────────────────────


def load(store_id: int, path: Sequence[Key], fn: Callable[[], Awaitable[object]]) -> None:
    """Run fn() once and write its result (or error object) at path."""

    async def _run() -> None:
        try:
            result = await fn()
        except Exception as exc:
            report(AsyncComputationError(store_id, exc))
            result = error_object(exc)
        write(store_id, path, lambda _current: result)

    if not _submit(_run()):
        exc = RuntimeError(NO_LOOP_MESSAGE)
        report(AsyncComputationError(store_id, exc))
        result = error_object(exc)
        write(store_id, path, lambda _current: result)
