"""Persistence adapter — mirror a store into a key/value string backend.

``persist(initial, backend, key)`` creates a new Value Store seeded from the
backend (or from ``initial`` when the key is absent or unreadable) and writes
its JSON form back on every change, debounced. A stored ``null`` restores
None; only a missing key falls back to ``initial``.

Two backends ship: MemoryBackend (session-scoped, lives as long as the
process) and FileBackend (durable, one JSON document on disk). Failures to
serialize or store are reported as PersistenceError; the in-memory store is
unaffected and that write is skipped.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from stashx import _anchor
from stashx.errors import PersistenceError, report
from stashx.stream import EventStream
from stashx.value import add_listener, create_store

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.01  # seconds

STORAGE_PATH_ENV = "STASHX_STORAGE_PATH"


class Backend(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryBackend:
    """Session-scoped storage: a dict that lives as long as the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def clear(self) -> None:
        self._items.clear()

    def __repr__(self) -> str:
        return f"MemoryBackend({len(self._items)} keys)"


class FileBackend:
    """Durable storage: one JSON object of key -> string, replaced atomically."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        data = json.loads(text)
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            try:
                items = self._read_all()
            except ValueError:
                logger.warning("Discarding unreadable storage file %s", self.path)
                items = {}
            items[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".stashx-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(items, fh)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise

    def __repr__(self) -> str:
        return f"FileBackend({str(self.path)!r})"


session_storage = MemoryBackend()

_local_storage: FileBackend | None = None


def default_storage_path() -> Path:
    env = os.environ.get(STORAGE_PATH_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".stashx" / "storage.json"


def local_storage() -> FileBackend:
    """The process-wide durable backend, created on first use."""
    global _local_storage
    if _local_storage is None:
        _local_storage = FileBackend(default_storage_path())
    return _local_storage


def set_local_storage(backend: FileBackend | None) -> None:
    """Replace the durable backend used by Handle.to_local (None resets it)."""
    global _local_storage
    _local_storage = backend


def _load(store_id: int, backend: Backend, key: str, fallback: object) -> object:
    try:
        raw = backend.get_item(key)
    except Exception as exc:
        report(PersistenceError(store_id, key, exc))
        return fallback
    if raw is None:
        return fallback
    try:
        return json.loads(raw)
    except ValueError as exc:
        report(PersistenceError(store_id, key, exc))
        return fallback


def _save(store_id: int, backend: Backend, key: str, value: object) -> None:
    try:
        backend.set_item(key, json.dumps(value))
    except (TypeError, ValueError, OSError) as exc:
        report(PersistenceError(store_id, key, exc))
        return
    logger.debug("Persisted store %d under key %r", store_id, key)


def persist(initial: object, backend: Backend, key: str, *, debounce: float = DEFAULT_DEBOUNCE) -> int:
    """Create a Value Store mirrored to backend[key]. Returns its id."""
    store_id = create_store(initial)
    _anchor.values[store_id] = _load(store_id, backend, key, initial)

    changes: EventStream[object] = EventStream()
    changes.debounce(debounce).subscribe(lambda value: _save(store_id, backend, key, value))
    add_listener(store_id, lambda: changes.emit(_anchor.values[store_id]))
    return store_id
