"""stashx error hierarchy and the error reporter.

Only UnsupportedOperation and UnsupportedCapability are ever raised to
callers. The remaining errors describe failures that the engine recovers
from; they are built and handed to the reporter, which logs them by default.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class StashError(Exception):
    """Base error for all stashx operations."""


class UnsupportedOperation(StashError):
    """Mutating a read-only derived store."""


class UnsupportedCapability(StashError):
    """Asking a handle for something its store cannot do."""


class _RecoveredError(StashError):
    """A failure the engine recovered from. Carries the store id and cause."""

    def __init__(self, store_id: int, cause: BaseException | None, detail: str = "") -> None:
        self.store_id = store_id
        self.cause = cause
        message = detail or (f"{type(cause).__name__}: {cause}" if cause is not None else "")
        super().__init__(f"store {store_id}: {message}")


class ComputationError(_RecoveredError):
    """A synchronous derivation raised; the store keeps its last good value."""


class AsyncComputationError(_RecoveredError):
    """An asynchronous derivation failed; the store holds an error object."""


class ListenerError(_RecoveredError):
    """A change listener raised while being notified."""


class PersistenceError(_RecoveredError):
    """Serializing, deserializing or storing a persisted value failed."""

    def __init__(self, store_id: int, key: str, cause: BaseException | None, detail: str = "") -> None:
        self.key = key
        super().__init__(store_id, cause, detail or f"key {key!r}: {cause}")


def _log_error(error: StashError) -> None:
    cause = getattr(error, "cause", None)
    if cause is not None:
        logger.error("%s", error, exc_info=(type(cause), cause, cause.__traceback__))
    else:
        logger.error("%s", error)


_handler: Callable[[StashError], None] = _log_error


def set_error_handler(handler: Callable[[StashError], None] | None) -> None:
    """Replace the reporter for recovered errors. None restores logging."""
    global _handler
    _handler = handler if handler is not None else _log_error


def report(error: StashError) -> None:
    """Hand a recovered error to the configured reporter.

    A reporter that itself raises is logged and otherwise ignored so the
    mutation pipeline always runs to completion.
    """
    try:
        _handler(error)
    except Exception:
        logger.exception("Error handler failed while reporting %s", error)
