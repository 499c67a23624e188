"""Equality comparers that gate state mutation.

A comparer takes ``(next_value, previous_value)`` and returns True when the
two should be treated as the same value, in which case ``set()`` is a no-op.
"""

from __future__ import annotations

import datetime
from collections.abc import Mapping, Sequence
from typing import Any, Callable

Comparer = Callable[[Any, Any], bool]


def same(a: Any, b: Any) -> bool:
    return a is b or bool(a == b)


def same_date(a: Any, b: Any) -> bool:
    return (
        isinstance(a, datetime.date)
        and isinstance(b, datetime.date)
        and type(a) is type(b)
        and a == b
    )


def shallow_array(a: Any, b: Any) -> bool:
    """Shallow element-wise comparison; non-sequences fall back to identity."""
    if isinstance(a, Sequence) and isinstance(b, Sequence):
        if len(a) != len(b):
            return False
        return all(same(x, y) for x, y in zip(a, b))
    return a is b


def shallow_object(a: Any, b: Any) -> bool:
    """Shallow key-by-key comparison of mappings or plain objects."""
    if not isinstance(a, Mapping) and hasattr(a, "__dict__"):
        a = vars(a)
    if not isinstance(b, Mapping) and hasattr(b, "__dict__"):
        b = vars(b)
    if not (isinstance(a, Mapping) and isinstance(b, Mapping)):
        return a is b
    if a.keys() != b.keys():
        return False
    return all(same(a[key], b[key]) for key in a)


COMPARERS: dict[str, Comparer] = {
    "default": same,
    "date": same_date,
    "array": shallow_array,
    "object": shallow_object,
}


def resolve(type_: str | Comparer | None) -> Comparer:
    """Turn a ``type`` option into a comparer function."""
    if callable(type_):
        return type_
    if type_ is None:
        return same
    try:
        return COMPARERS[type_]
    except KeyError:
        raise ValueError(
            f"Unknown comparer type {type_!r}; expected one of {sorted(COMPARERS)} or a callable"
        ) from None
