"""Textual integration for stately. Opt-in, requires textual.

Binds a state to a Textual app: every change re-reads the state and hands the
value to an effect, usually a widget update. Guards, NoMatches handling and
thread marshalling live here so core stately stays view-agnostic.

Each ``bind()`` subscribes once and returns the matching unsubscribe;
``bound()`` pairs them for the lifetime of a ``with`` block.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from stately.compose import to_node
from stately.errors import InvalidSourceError

logger = logging.getLogger("stately.textual")

# id(app) for every app inside a pause() block.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bindings during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """True when bindings may query the app's widgets: running and not paused."""
    return app.is_running and id(app) not in _paused_apps


def bind(app, state, effect, *, fire_immediately=False):
    """Call effect(value) whenever state changes, while the app is safe.

    Changes notified from another thread are marshalled with
    ``app.call_from_thread``. NoMatches raised by widget queries in effect is
    ignored; other errors, including the state's own cached error, propagate.
    Returns the unsubscribe function.
    """
    node = to_node(state)
    if node is None:
        raise InvalidSourceError(f"Cannot bind {state!r}: not a state")
    _main = threading.get_ident()

    def _guarded():
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe():
        try:
            effect(node.get())
        except NoMatches:
            logger.debug("Skipped update of %r: widget not mounted", node)

    unsubscribe = node.subscribe(_guarded)
    if fire_immediately:
        _guarded()
    return unsubscribe


@contextmanager
def bound(app, state, effect, *, fire_immediately=False):
    """Keep a binding for the duration of a with-block."""
    unsubscribe = bind(app, state, effect, fire_immediately=fire_immediately)
    try:
        yield state
    finally:
        unsubscribe()
