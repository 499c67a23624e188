"""Evaluation scope: the frame that makes dependency discovery automatic.

Uses a ContextVar to hold the state currently being evaluated. When a state is
read while a frame is active, the read registers the state as a dependency of
the frame's owner. Entering a frame saves the enclosing one and restores it on
every exit path, so nested evaluations compose.

Frames are only visible to synchronous code. A coroutine evaluator runs up to
its first suspension inside the frame, so reads before the first ``await`` are
tracked. Asyncio tasks copy the context at creation, so the engine schedules
the rest from a detached context: reads after a suspension are never tracked.
"""

from __future__ import annotations

import contextvars
import itertools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from stately.node import StateNode

_scope_ids = itertools.count(1)


class EvaluationScope:
    """An explicitly owned evaluation context.

    States only track each other when they share a scope. ``default_scope`` is
    shared by everything created through ``stately.state``; pass ``scope=`` to
    build an isolated graph.
    """

    __slots__ = ("_frame", "name")

    def __init__(self, name: str | None = None) -> None:
        self.name = name or f"scope-{next(_scope_ids)}"
        self._frame: contextvars.ContextVar[StateNode | None] = contextvars.ContextVar(
            f"stately_frame_{self.name}", default=None
        )

    def current(self) -> StateNode | None:
        """The state whose evaluator is running, or None."""
        return self._frame.get()

    @contextmanager
    def enter(self, node: StateNode) -> Iterator[StateNode]:
        token = self._frame.set(node)
        try:
            yield node
        finally:
            self._frame.reset(token)

    @contextmanager
    def detached(self) -> Iterator[None]:
        """Run a block (typically task creation) with no active frame."""
        token = self._frame.set(None)
        try:
            yield
        finally:
            self._frame.reset(token)

    def __repr__(self) -> str:
        return f"EvaluationScope({self.name!r})"


default_scope = EvaluationScope("default")
