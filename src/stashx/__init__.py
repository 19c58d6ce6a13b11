"""stashx: fine-grained, path-scoped reactive state for Python."""

from importlib.metadata import version as _version

__version__ = _version("stashx")

from stashx.handle import Handle, store, derive
from stashx.scheduler import set_event_loop
from stashx.value import set_scheduler
from stashx.persist import MemoryBackend, FileBackend
from stashx.errors import (
    StashError,
    UnsupportedOperation,
    UnsupportedCapability,
    ComputationError,
    AsyncComputationError,
    ListenerError,
    PersistenceError,
    set_error_handler,
)
from stashx.status import (
    is_loading,
    is_error,
    is_success,
    get_error_message,
    get_error_status,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "Handle",
    "store",
    "derive",
    "set_event_loop",
    "set_scheduler",
    "MemoryBackend",
    "FileBackend",
    "StashError",
    "UnsupportedOperation",
    "UnsupportedCapability",
    "ComputationError",
    "AsyncComputationError",
    "ListenerError",
    "PersistenceError",
    "set_error_handler",
    "is_loading",
    "is_error",
    "is_success",
    "get_error_message",
    "get_error_status",
]
