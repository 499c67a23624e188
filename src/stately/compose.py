"""Derived states and the ``state`` builder.

Derived states are ordinary states whose evaluator reads other states, so the
dependency edges come for free from the evaluation frame.

Usage:
    count = state(1)
    double = count.map(lambda n: n * 2)
    total = from_([count, double], lambda a, b: a + b)

    total.get()  # 3
    count.set(2)
    total.get()  # 6
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any, Callable, NamedTuple

from stately.errors import InvalidSourceError
from stately.family import StateFamily
from stately.node import StateNode
from stately.options import StateOptions

Selector = Callable[..., Any]


class StateList(NamedTuple):
    valid: bool
    multiple: bool
    states: list[StateNode | None]


def to_node(value: Any) -> StateNode | None:
    """Normalize a state handle to a node; None when value is not one."""
    if isinstance(value, StateNode):
        return value
    if isinstance(value, StateFamily):
        return value.family()
    return None


def validate_states(value: Any) -> StateList:
    """Recognize a single state handle, a list/tuple of handles, or neither."""
    node = to_node(value)
    if node is not None:
        return StateList(True, False, [node])
    if isinstance(value, (list, tuple)):
        states = [to_node(item) for item in value]
        return StateList(all(s is not None for s in states), True, states)
    return StateList(False, False, [])


def _derived_options(source: StateNode, overrides: dict[str, Any]) -> StateOptions:
    # Derived states must share the source's scope to be tracked.
    return StateOptions(scope=source.scope).merge(**overrides)


async def _after(awaitable: Any, fn: Callable[[Any], Any]) -> Any:
    return fn(await awaitable)


def _attribute(name: str) -> Callable[[Any], Any]:
    def select(value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, Mapping):
            return value.get(name)
        return getattr(value, name, None)

    select.__name__ = f"select_{name}"
    return select


def map_state(source: StateNode, selector: Selector | str, **options: Any) -> StateFamily:
    """A state holding ``selector(source value)``.

    A string selector reads that key or attribute, propagating None. Pending
    source values are mapped once they settle.
    """
    if isinstance(selector, str):
        selector = _attribute(selector)

    def mapped(*_args: Any) -> Any:
        value = source.get()
        if inspect.isawaitable(value):
            return _after(value, selector)
        return selector(value)

    return StateFamily(mapped, _derived_options(source, options))


def reduce_state(
    source: StateNode, reducer: Selector, seed: Any = None, **options: Any
) -> StateFamily:
    """An action-backed state folding the source value on every ``next()``.

    Each ``next(*args)`` stores ``reducer(accumulator, source value, *args)``.
    The accumulator restarts from seed whenever the state re-evaluates.
    """

    def start(_value: Any) -> Callable[..., Any]:
        accumulator = seed

        def step(*args: Any) -> Any:
            nonlocal accumulator
            accumulator = reducer(accumulator, source.get(), *args)
            return accumulator

        return step

    return map_state(source, start, **{"default": seed, **options})


def filter_state(
    source: StateNode, predicate: Callable[[Any], bool], default: Any = None, **options: Any
) -> StateFamily:
    """A state holding the latest source value accepted by predicate."""
    accepted = default

    def accept(value: Any) -> Any:
        nonlocal accepted
        if predicate(value):
            accepted = value
        return accepted

    def filtered(*_args: Any) -> Any:
        value = source.get()
        if inspect.isawaitable(value):
            return _after(value, accept)
        return accept(value)

    return StateFamily(filtered, _derived_options(source, {"default": default, **options}))


def from_(
    sources: Any,
    selector: Selector | None = None,
    *,
    builder: Builder | None = None,
) -> StateFamily:
    """Combine one or more states into a new one.

    sources is a state, a list/tuple of states, or a mapping of name to state.
    Without a selector the new state holds the source value, the list of
    values, or the dict of values. With one it holds ``selector(*values)``, or
    ``selector(**values)`` for a mapping.
    """
    build = builder if builder is not None else state

    if isinstance(sources, Mapping):
        named: dict[str, StateNode] = {}
        for key, item in sources.items():
            node = to_node(item)
            if node is None:
                raise InvalidSourceError(f"Invalid input state for {key!r}: {item!r}")
            named[key] = node
        scope = _scope_of(named.values())

        if selector is None:

            def combined_dict(*_args: Any) -> dict[str, Any]:
                return {key: node.get() for key, node in named.items()}

            return build(combined_dict, type="object", **scope)

        def selected_from_dict(*_args: Any) -> Any:
            return selector(**{key: node.get() for key, node in named.items()})

        return build(selected_from_dict, **scope)

    state_list = validate_states(sources)
    if not state_list.valid:
        raise InvalidSourceError(f"Invalid input state: {sources!r}")
    nodes = state_list.states
    scope = _scope_of(nodes)

    if selector is None:
        if state_list.multiple:

            def combined_list(*_args: Any) -> list[Any]:
                return [node.get() for node in nodes]

            return build(combined_list, type="array", **scope)

        def single(*_args: Any) -> Any:
            return nodes[0].get()

        return build(single, **scope)

    def selected(*_args: Any) -> Any:
        return selector(*[node.get() for node in nodes])

    return build(selected, **scope)


def _scope_of(nodes) -> dict[str, Any]:
    for node in nodes:
        return {"scope": node.scope}
    return {}


class Builder:
    """Callable state constructor with preset options.

    Usage:
        tagged = state.builder(type="object")
        user = tagged({"name": "Ada"})
        user.set({"name": "Ada"})  # shallow-equal, no change event
    """

    def __init__(self, **options: Any) -> None:
        StateOptions(**options)  # validates
        self._options = options

    def __call__(self, value: Any, **options: Any) -> StateFamily:
        return StateFamily(value, StateOptions(**{**self._options, **options}))

    def builder(self, **options: Any) -> Builder:
        return Builder(**{**self._options, **options})

    def from_(self, sources: Any, selector: Selector | None = None) -> StateFamily:
        return from_(sources, selector, builder=self)

    def object(self, value: Any, **options: Any) -> StateFamily:
        return self(value, **{"type": "object", **options})

    def array(self, value: Any, **options: Any) -> StateFamily:
        return self(value, **{"type": "array", **options})

    def date(self, value: Any, **options: Any) -> StateFamily:
        return self(value, **{"type": "date", **options})

    def __repr__(self) -> str:
        return f"Builder({self._options!r})"


state = Builder()
builder = state.builder
