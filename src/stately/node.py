"""State nodes: memoized, lazily evaluated, observable value slots.

A StateNode wraps an evaluator. The first read runs it inside an evaluation
frame, so every state it reads registers itself as a dependency. The result is
cached until the node is reset, either explicitly or because a dependency
changed. Writes go through an equality comparer: an equal value is a no-op, a
different one notifies subscribers synchronously, in subscription order.

The evaluator result decides the node's kind:

- an awaitable becomes a ``Deferred`` with an observable ``loadable``;
- an iterator is a stream: one step is taken immediately, ``next()`` takes more;
- an async iterator is an async stream, stepped the same way on the loop;
- a function is an action: ``next(*args)`` calls it and stores the result;
- anything else is the value itself.

Evaluator exceptions are cached and re-raised on every read until ``reset()``.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import AsyncIterator, Iterator
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from stately.emitter import Emitter, Unsubscribe
from stately.errors import (
    CyclicReadError,
    InvalidSourceError,
    NestedMutationError,
    StateError,
)
from stately.loadable import Cancellable, Deferred, Loadable, start_eagerly
from stately.options import StateOptions
from stately.result import Err, Kind, Ok

if TYPE_CHECKING:
    from stately.family import StateFamily
    from stately.scope import EvaluationScope

logger = logging.getLogger("stately.node")

T = TypeVar("T")

CHANGE = "change"

_UNSET = object()


def is_function(value: object) -> bool:
    """True for plain callables: functions, methods, builtins and partials.

    State handles and classes are callable too, but are treated as values.
    """
    return inspect.isroutine(value) or isinstance(value, functools.partial)


def _first_arg(*args: Any) -> Any:
    return args[0] if args else None


class StateNode(Generic[T]):
    """A memoized value slot with automatic dependency tracking."""

    __slots__ = (
        "_evaluator",
        "_args",
        "_options",
        "_comparer",
        "_scope",
        "_emitter",
        "_raw",
        "_slot",
        "_kind",
        "_needs_evaluation",
        "_evaluating",
        "_changed",
        "_edges",
        "_cursor",
        "_done",
        "_pending_step",
        "_changed_waiter",
    )

    def __init__(
        self,
        evaluator: Callable[..., Any],
        args: tuple = (),
        options: StateOptions | None = None,
    ) -> None:
        self._evaluator = evaluator
        self._args = tuple(args)
        self._options = options or StateOptions()
        self._comparer = self._options.comparer
        self._scope: EvaluationScope = self._options.scope
        self._emitter = Emitter()
        self._raw: Any = _UNSET
        self._slot: Ok | Err | None = None
        self._kind: Kind | None = None
        self._needs_evaluation = True
        self._evaluating = False
        self._changed = False
        # dependency -> unsubscribe handle
        self._edges: dict[StateNode, Unsubscribe] = {}
        self._cursor: Any = None
        self._done = False
        self._pending_step: asyncio.Future | None = None
        self._changed_waiter: asyncio.Future | None = None

    # --- Introspection ---

    @property
    def args(self) -> tuple:
        return self._args

    @property
    def options(self) -> StateOptions:
        return self._options

    @property
    def scope(self) -> EvaluationScope:
        return self._scope

    @property
    def kind(self) -> Kind | None:
        """Result kind of the latest evaluation; None before the first one."""
        return self._kind

    @property
    def is_changed(self) -> bool:
        """True when written by set()/next() since the last evaluation."""
        return self._changed

    @property
    def needs_evaluation(self) -> bool:
        return self._needs_evaluation

    @property
    def done(self) -> bool:
        """True once a stream-backed state is exhausted."""
        return self._done

    @property
    def dependencies(self) -> list[StateNode]:
        return list(self._edges)

    # --- Reading ---

    def get(self) -> T:
        """Read the value, evaluating first if needed.

        Inside another state's evaluation, registers this state as one of its
        dependencies.
        """
        if self._evaluating:
            raise CyclicReadError(f"{self!r} was read during its own evaluation")

        frame = self._scope.current()
        if frame is not None:
            frame._track(self)

        if self._needs_evaluation:
            self._evaluate()

        return self._slot.unwrap()

    @property
    def loadable(self) -> Loadable | None:
        """Lifecycle of the current value when it is pending, else None."""
        value = self.get()
        if isinstance(value, Deferred):
            return value.loadable
        return None

    def _evaluate(self) -> None:
        dispose = self._options.dispose
        if self._raw is not _UNSET and dispose is not None:
            dispose(self._raw)
            self._raw = _UNSET

        self._cursor = None
        self._done = False
        self._pending_step = None
        self._evaluating = True
        try:
            with self._scope.enter(self):
                raw = self._classify(self._evaluator(*self._args))
            self._raw = raw
            self._slot = Ok(self._project(raw))
            logger.debug("Evaluated %r as %s", self, self._kind.value)
        except Exception as exc:
            logger.debug("Evaluation of %r raised %r; cached until reset", self, exc)
            self._slot = Err(exc)
        finally:
            self._evaluating = False
            self._needs_evaluation = False

    def _classify(self, result: Any) -> Any:
        """Decide the node kind from an evaluator result; return the raw value."""
        if inspect.isawaitable(result):
            self._kind = Kind.DEFERRED
            if inspect.iscoroutine(result):
                # The slice before the first await runs inside the frame.
                result = start_eagerly(result)
            return self._defer(result)

        if isinstance(result, AsyncIterator):
            self._kind = Kind.ASYNC_STREAM
            self._cursor = result
            first = self._defer(start_eagerly(self._first_async_step(result)))
            self._pending_step = first.future
            return first

        if isinstance(result, Iterator):
            self._kind = Kind.STREAM
            self._cursor = result
            try:
                return next(result)
            except StopIteration:
                self._done = True
                return self._options.default

        if is_function(result):
            self._kind = Kind.ACTION
            self._cursor = result
            return self._options.default

        self._kind = Kind.VALUE
        return result

    async def _first_async_step(self, cursor: AsyncIterator) -> Any:
        try:
            return await anext(cursor)
        except StopAsyncIteration:
            if self._cursor is cursor:
                self._done = True
            return self._options.default

    def _defer(self, awaitable: Any) -> Deferred:
        # Tasks copy the current context; never let one inherit a frame.
        with self._scope.detached():
            return Deferred(awaitable)

    def _project(self, raw: Any) -> Any:
        mapper = self._options.map
        value = mapper(raw) if mapper is not None else raw
        if inspect.isawaitable(value) and not isinstance(value, Deferred):
            value = self._defer(value)
        return value

    # --- Writing ---

    def _guard_mutation(self) -> None:
        frame = self._scope.current()
        if frame is not None:
            raise NestedMutationError(
                f"Cannot change {self!r} while {frame!r} is being evaluated"
            )

    def set(self, value: T | Callable[[T], T]) -> bool:
        """Write a value, or apply a reducer to the previous raw value.

        Returns True when the comparer saw a different value.
        """
        self._guard_mutation()
        self.get()
        if is_function(value):
            value = value(self._raw)
        return self._commit(value)

    def _commit(self, value: Any) -> bool:
        if inspect.isawaitable(value) and not isinstance(value, Deferred):
            value = self._defer(value)

        previous = self._raw
        if previous is not _UNSET and self._comparer(value, previous):
            return False

        dispose = self._options.dispose
        if previous is not _UNSET and dispose is not None:
            dispose(previous)
        self._raw = value
        self._slot = Ok(self._project(value))
        self._changed = True

        waiter, self._changed_waiter = self._changed_waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

        self._emitter.emit(CHANGE)
        return True

    def reset(self) -> None:
        """Invalidate the cached value and drop every dependency edge.

        Always notifies subscribers; the next get() re-evaluates.
        """
        self._needs_evaluation = True
        self._changed = False
        self._cursor = None
        self._done = False
        self._pending_step = None
        edges, self._edges = self._edges, {}
        for unsubscribe in edges.values():
            unsubscribe()
        self._emitter.emit(CHANGE)

    # --- Dependency graph ---

    def _track(self, dependency: StateNode) -> None:
        if dependency not in self._edges:
            self._edges[dependency] = dependency.subscribe(self._on_dependency_change)

    def _on_dependency_change(self) -> None:
        # An explicit write wins over a stale dependency until re-evaluation.
        if not self._changed:
            logger.debug("Dependency of %r changed; resetting", self)
            self.reset()

    def subscribe(self, listener: Callable[[], Any]) -> Unsubscribe:
        """Call listener() on every change. Returns an unsubscribe function."""
        return self._emitter.on(CHANGE, listener)

    def watch(self, subscribable: Any, transform: Callable[..., Any] | None = None) -> StateNode[T]:
        """Feed values published by subscribable into this state.

        Uses ``subscribable.subscribe(listener)`` when available, otherwise
        calls ``subscribable(listener)``.
        """
        if transform is None:
            transform = _first_arg

        def listener(*args: Any) -> None:
            self.set(transform(*args))

        subscribe = getattr(subscribable, "subscribe", None)
        if callable(subscribe):
            subscribe(listener)
        elif callable(subscribable):
            subscribable(listener)
        else:
            raise InvalidSourceError(f"Invalid subscribable object: {subscribable!r}")
        return self

    def changed(self) -> asyncio.Future[None]:
        """A future resolved by the next change of value."""
        if self._changed_waiter is None or self._changed_waiter.done():
            self._changed_waiter = asyncio.get_running_loop().create_future()
        return self._changed_waiter

    # --- Incremental stepping ---

    def next(self, *args: Any) -> bool | asyncio.Future[bool]:
        """Advance the stream or call the action once.

        Returns whether more steps may follow. Async streams return a task
        resolving to that flag.
        """
        self._guard_mutation()
        self.get()
        kind = self._kind

        if kind is Kind.ACTION:
            self._commit(self._cursor(*args))
            return True

        if kind is Kind.ASYNC_STREAM:
            return self._step_async(args)

        if kind is Kind.STREAM and not self._done:
            cursor = self._cursor
            try:
                if args and hasattr(cursor, "send"):
                    value = cursor.send(args[0])
                else:
                    value = next(cursor)
            except StopIteration:
                self._done = True
                return False
            self._commit(value)
            return True

        return False

    def _step_async(self, args: tuple) -> asyncio.Future[bool]:
        loop = asyncio.get_running_loop()
        cursor = self._cursor
        if self._done or cursor is None:
            finished = loop.create_future()
            finished.set_result(False)
            return finished

        previous = self._pending_step
        with self._scope.detached():
            task = loop.create_task(self._advance_async(cursor, previous, args))
        self._pending_step = task
        return task

    async def _advance_async(
        self,
        cursor: AsyncIterator,
        previous: asyncio.Future | None,
        args: tuple,
    ) -> bool:
        # Async generators reject overlapping steps; run them in order.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        if self._done or self._cursor is not cursor:
            return False

        if args and hasattr(cursor, "asend"):
            step = cursor.asend(args[0])
        else:
            step = anext(cursor)
        try:
            value = await step
        except StopAsyncIteration:
            if self._cursor is cursor:
                self._done = True
            return False

        if self._cursor is not cursor:
            # Reset while the step was in flight.
            return False
        self._commit(value)
        return True

    def last(self, *args: Any, parent: Cancellable | None = None) -> Any:
        """Drain the stream and return its terminal value.

        Async streams return a ``Cancellable`` resolving to the latest value;
        cancelling it stops the drain between steps.
        """
        self.get()
        kind = self._kind

        if kind is Kind.ACTION:
            raise StateError(f"{self!r} holds an action and has no terminal value")

        if kind is Kind.ASYNC_STREAM:
            token: Cancellable = Cancellable(parent=parent)
            with self._scope.detached():
                return token.run(self._drain(token, args))

        if kind is Kind.STREAM:
            while self.next(*args):
                pass
        return self.get()

    async def _drain(self, token: Cancellable, args: tuple) -> Any:
        while not token.is_cancelled():
            more = self.next(*args)
            if inspect.isawaitable(more):
                more = await token.child(more)
            if not more:
                break
        value = self.get()
        if isinstance(value, Deferred):
            value = await value
        return value

    # --- Derived states ---

    def map(self, selector: Callable[[T], Any] | str, **options: Any) -> StateFamily:
        from stately.compose import map_state

        return map_state(self, selector, **options)

    def reduce(self, reducer: Callable[..., Any], seed: Any = None, **options: Any) -> StateFamily:
        from stately.compose import reduce_state

        return reduce_state(self, reducer, seed, **options)

    def filter(
        self, predicate: Callable[[T], bool], default: Any = None, **options: Any
    ) -> StateFamily:
        from stately.compose import filter_state

        return filter_state(self, predicate, default, **options)

    def __repr__(self) -> str:
        name = getattr(self._evaluator, "__name__", type(self._evaluator).__name__)
        args = ", ".join(repr(arg) for arg in self._args)
        if self._needs_evaluation:
            state = "dirty"
        elif isinstance(self._slot, Err):
            state = f"error={self._slot.error!r}"
        else:
            state = f"cached={self._slot.value!r}"
        return f"StateNode({name}({args}), {state})"
