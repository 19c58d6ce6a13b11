"""Textual integration for stashx. Opt-in — requires textual.

Consumes the same (subscribe, snapshot) pair any UI layer would: a widget
effect is called with the handle's snapshot whenever the handle reports a
change. Guarding, NoMatches handling and thread marshaling live here so the
core stays UI-agnostic.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def bind(app, handle, effect_fn, *, fire_immediately=False):
    """Call effect_fn(handle.snapshot()) on every change of handle.

    Skips while the app is paused or not running, ignores NoMatches raised
    by widget queries, and marshals calls from other threads through
    app.call_from_thread. Returns the unsubscribe function.

    Usage:
        unbind = stx.bind(app, todos["items"], lambda items: list_view.refresh_items(items))
    """
    _main = threading.get_ident()

    def _safe():
        try:
            effect_fn(handle.snapshot())
        except NoMatches:
            pass

    def _guarded():
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    unsubscribe = handle.subscribe(_guarded)
    if fire_immediately:
        _guarded()
    return unsubscribe
