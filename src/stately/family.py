"""State families: parametrized state, one node per argument tuple.

A family resolves an argument tuple to a memoized StateNode, creating it on
first access. The empty tuple holds the default instance, whose operations the
family exposes directly, so a family with no arguments reads like a single
state. Members live until ``clear()`` or ``forget()``; nothing is evicted
automatically.
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Generic, TypeVar

from stately.emitter import Unsubscribe
from stately.loadable import Cancellable, Loadable
from stately.memo import ArgKeyedMemo
from stately.node import StateNode
from stately.options import StateOptions

T = TypeVar("T")

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


def _constant(value: Any) -> Callable[..., Any]:
    def initial_value(*_args: Any) -> Any:
        return value

    return initial_value


def _fit_arity(initializer: Callable[..., Any]) -> Callable[..., Any]:
    """Drop member arguments the initializer has no positional slot for."""
    try:
        params = inspect.signature(initializer).parameters.values()
    except (TypeError, ValueError):
        return initializer
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return initializer
    arity = sum(1 for p in params if p.kind in _POSITIONAL)

    @functools.wraps(initializer)
    def trimmed(*args: Any) -> Any:
        return initializer(*args[:arity])

    return trimmed


class StateFamily(Generic[T]):
    """Public handle for a declared unit of state."""

    __slots__ = ("_initializer", "_options", "_memo")

    def __init__(self, initializer: Any, options: StateOptions | None = None) -> None:
        if callable(initializer):
            self._initializer = _fit_arity(initializer)
        else:
            self._initializer = _constant(initializer)
        self._options = options or StateOptions()
        self._memo: ArgKeyedMemo[StateNode[T]] = ArgKeyedMemo()

    @property
    def options(self) -> StateOptions:
        return self._options

    def family(self, *args: Any) -> StateNode[T]:
        """The node for args, created if needed but not evaluated."""
        return self._memo.get_or_add(args, self._create)

    def _create(self, args: tuple) -> StateNode[T]:
        return StateNode(self._initializer, args, self._options)

    def __call__(self, *args: Any) -> tuple[T, Callable[[Any], bool]]:
        """Evaluate the node for args and return ``(value, setter)``."""
        node = self.family(*args)
        return node.get(), node.set

    def forget(self, *args: Any) -> None:
        """Drop the node for args; the next access creates a fresh one."""
        self._memo.delete(args)

    def clear(self) -> None:
        """Drop every member, including the default instance."""
        self._memo.clear()

    def __contains__(self, args: tuple) -> bool:
        return args in self._memo

    # --- Default instance ---

    def get(self, *args: Any) -> T:
        return self.family(*args).get()

    def set(self, value: Any) -> bool:
        return self.family().set(value)

    def reset(self) -> None:
        self.family().reset()

    def subscribe(self, listener: Callable[[], Any]) -> Unsubscribe:
        return self.family().subscribe(listener)

    def watch(self, subscribable: Any, transform: Callable[..., Any] | None = None) -> StateFamily[T]:
        self.family().watch(subscribable, transform)
        return self

    def next(self, *args: Any):
        return self.family().next(*args)

    def last(self, *args: Any, parent: Cancellable | None = None) -> Any:
        return self.family().last(*args, parent=parent)

    def changed(self):
        return self.family().changed()

    @property
    def loadable(self) -> Loadable | None:
        return self.family().loadable

    def map(self, selector: Callable[[T], Any] | str, **options: Any) -> StateFamily:
        return self.family().map(selector, **options)

    def reduce(self, reducer: Callable[..., Any], seed: Any = None, **options: Any) -> StateFamily:
        return self.family().reduce(reducer, seed, **options)

    def filter(self, predicate: Callable[[T], bool], default: Any = None, **options: Any) -> StateFamily:
        return self.family().filter(predicate, default, **options)

    def __repr__(self) -> str:
        name = getattr(self._initializer, "__name__", type(self._initializer).__name__)
        return f"StateFamily({name})"
