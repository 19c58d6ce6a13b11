"""Handles — identity-stable, path-scoped views over a store.

A Handle is ``(store_id, path)`` and nothing else; all state lives in
_anchor. Handles are cached per ``(store_id, path)``, so asking for the same
path twice returns the very same object and can be used as a dict key or a
dependency marker.

Usage:
    user = store({"name": "Ada", "langs": ["en"]})
    name = user["name"]
    name.get()                  # "Ada"
    name.set(str.upper)         # updater; siblings keep their identity
    greeting = name.derive(lambda n: f"Hello {n}")
    total = derive(lambda get: len(get(user["langs"])))
"""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable

from stashx import _anchor, computed, persist, scheduler
from stashx._paths import Key, Path
from stashx.errors import UnsupportedCapability, UnsupportedOperation
from stashx.value import Listener, Unsubscribe, add_listener, create_store, read, write


class Handle:
    """Path-scoped accessor over a Value Store, Derived Store or Async Derived Store."""

    __slots__ = ("_id", "_path")

    def __init__(self, store_id: int, path: Path = ()) -> None:
        self._id = store_id
        self._path = path

    @classmethod
    def for_path(cls, store_id: int, path: tuple[Key, ...] | list[Key] = ()) -> Handle:
        """The cached handle for (store_id, path), created on first request."""
        path = tuple(path)
        # 1 == True, so key types are part of the cache key.
        cache_key = (store_id, tuple((type(key), key) for key in path))
        cached = _anchor.handles.get(cache_key)
        if cached is None:
            cached = cls(store_id, path)
            _anchor.handles[cache_key] = cached
        return cached

    # --- Identity ---

    @property
    def store_id(self) -> int:
        return self._id

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_derived(self) -> bool:
        return _anchor.is_derived(self._id)

    @property
    def is_async(self) -> bool:
        return _anchor.is_async(self._id)

    def __getitem__(self, key: Key) -> Handle:
        if self.is_derived:
            raise UnsupportedCapability(
                f"Derived store handles have no nested paths (requested {key!r})"
            )
        return Handle.for_path(self._id, self._path + (key,))

    def at(self, *keys: Key) -> Handle:
        """Handle for a nested path: h.at("user", "name") is h["user"]["name"]."""
        handle = self
        for key in keys:
            handle = handle[key]
        return handle

    # --- Read / write ---

    def get(self) -> object:
        """Current value. Derived stores re-evaluate; async stores re-check their input."""
        if self.is_async:
            return scheduler.check_input(self._id)
        if self.is_derived:
            return computed.recompute(self._id)
        return read(self._id, self._path)

    def set(self, value_or_updater: object) -> None:
        """Write a value, or apply a callable updater to the current value.

        Derived stores are read-only, except those made with .derive(), which
        pass the raw value through to their source handle. No inverse of the
        derivation is applied.
        """
        if self.is_derived:
            source = _anchor.write_through.get(self._id)
            if source is None:
                raise UnsupportedOperation(
                    "Cannot set value on derived store. Derived stores are read-only."
                )
            source.set(value_or_updater)
            return
        write(self._id, self._path, value_or_updater)

    # --- UI synchronization contract ---

    def snapshot(self) -> object:
        """Stored value at this path, without re-evaluating anything."""
        return read(self._id, self._path)

    def subscribe(self, callback: Listener) -> Unsubscribe:
        """Call callback() after changes. Returns the unsubscribe function.

        On a nested path the callback only fires when the value at that path
        is a different object than at the previous notification.
        """
        if not self._path:
            return add_listener(self._id, callback)

        last = [self.snapshot()]

        def _on_change() -> None:
            current = self.snapshot()
            if current is last[0]:
                return
            last[0] = current
            callback()

        return add_listener(self._id, _on_change)

    # --- Derivation ---

    def derive(self, fn: Callable[[object], object]) -> Handle:
        """Derived store of fn(this value).

        ``async def`` functions, and plain functions whose first result is
        awaitable, go to derive_async. Setting the returned handle writes the
        raw value to this handle.
        """
        if inspect.iscoroutinefunction(fn):
            return self.derive_async(fn)
        derived_id = computed.create_derived(lambda get: fn(get(self)))
        if _discard_if_awaitable(derived_id):
            return self.derive_async(fn)
        _anchor.write_through[derived_id] = self
        return Handle.for_path(derived_id)

    def derive_async(self, fn: Callable[[object], Awaitable[object]]) -> Handle:
        """Async derived store of ``await fn(this value)``; starts loading at once."""
        store_id = scheduler.create_async_derived(lambda get: get(self), fn)
        return Handle.for_path(store_id)

    def load(self, fn: Callable[[], Awaitable[object]]) -> Handle:
        """Run ``await fn()`` once and write its result here. Returns self.

        A failure writes the structured error object instead.
        """
        if self.is_derived:
            raise UnsupportedOperation("Cannot load into a derived store. Derived stores are read-only.")
        scheduler.load(self._id, self._path, fn)
        return self

    def refresh(self) -> bool:
        """Re-run an async derived store with its current input."""
        if not self.is_async:
            raise UnsupportedCapability("refresh() is only available on async derived stores")
        return scheduler.refresh(self._id)

    # --- Persistence ---

    def to_persisted(
        self, backend: persist.Backend, key: str, *, debounce: float = persist.DEFAULT_DEBOUNCE
    ) -> Handle:
        """New store seeded from backend[key] (or this value) and mirrored to it."""
        store_id = persist.persist(self.snapshot(), backend, key, debounce=debounce)
        return Handle.for_path(store_id)

    def to_session(self, key: str) -> Handle:
        return self.to_persisted(persist.session_storage, key)

    def to_local(self, key: str) -> Handle:
        return self.to_persisted(persist.local_storage(), key)

    def __repr__(self) -> str:
        kind = "AsyncDerived" if self.is_async else "Derived" if self.is_derived else "Store"
        path = "".join(f"[{key!r}]" for key in self._path)
        return f"{kind}#{self._id}{path}({self.snapshot()!r})"


def store(initial: object) -> Handle:
    """Create a Value Store and return its root handle.

    Usage:
        counter = store(0)
        counter.set(lambda n: n + 1)
        counter.get()  # 1
    """
    return Handle.for_path(create_store(initial))


def derive(fn: Callable[[Callable[[Handle], object]], object]) -> Handle:
    """Create a Derived Store from fn(get) and return its handle.

    Every get(handle) call inside fn records a dependency; fn re-runs whenever
    one of them changes.

    Usage:
        count = store(2)
        name = store("x")
        label = derive(lambda get: f"{get(name)}={get(count)}")
        label.get()  # "x=2"
        count.set(3)
        label.get()  # "x=3"
    """
    if inspect.iscoroutinefunction(fn):
        raise TypeError("derive() takes a synchronous fn(get); use handle.derive_async() for coroutines")
    derived_id = computed.create_derived(fn)
    if _discard_if_awaitable(derived_id):
        raise TypeError("derive() fn returned an awaitable; use handle.derive_async() for coroutines")
    return Handle.for_path(derived_id)


def _discard_if_awaitable(derived_id: int) -> bool:
    """Drop a derived store whose first value is awaitable, closing it."""
    value = _anchor.values[derived_id]
    if not inspect.isawaitable(value):
        return False
    if inspect.iscoroutine(value):
        value.close()
    computed.discard(derived_id)
    return True
