"""Path resolver — read and copy-on-write into nested values.

A path is a tuple of keys (str or int). Reading tolerates missing
intermediates and returns None. Writing never mutates its input: it returns a
new container at every level of the path and shares every sibling subtree.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

Key = str | int
Path = tuple[Key, ...]


def _child(container: object, key: Key) -> object:
    if isinstance(container, Mapping):
        return container.get(key)
    if isinstance(container, (list, tuple)) and isinstance(key, int):
        try:
            return container[key]
        except IndexError:
            return None
    return None


def get_at_path(value: object, path: Sequence[Key]) -> object:
    """Value at path, or None when any step along the way is missing."""
    current = value
    for key in path:
        if current is None:
            return None
        current = _child(current, key)
    return current


def set_at_path(value: object, path: Sequence[Key], new_value: object) -> object:
    """Return a copy of value with new_value placed at path.

    Lists and tuples are copied as themselves (padded with None when writing
    past the end), dicts as dicts. A missing or scalar step is replaced by a
    fresh dict. A non-int key on a list or tuple raises TypeError.
    """
    if not path:
        return new_value

    key, rest = path[0], path[1:]

    if isinstance(value, (list, tuple)):
        if not isinstance(key, int):
            raise TypeError(f"Cannot write key {key!r} into a {type(value).__name__}; indexes must be int")
        items = list(value)
        if key >= len(items):
            items.extend([None] * (key - len(items) + 1))
        items[key] = set_at_path(_child(value, key), rest, new_value)
        return items if isinstance(value, list) else tuple(items)

    copy = dict(value) if isinstance(value, Mapping) else {}
    copy[key] = set_at_path(_child(value, key), rest, new_value)
    return copy
