"""Per-state configuration."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable

from stately import compare
from stately.scope import EvaluationScope, default_scope


@dataclass(frozen=True)
class StateOptions:
    """Options recognised by ``state()`` and ``Builder``.

    map: transforms the raw value into the observable value.
    type: "object", "array", "date", "default" or a comparer callable.
    dispose: called with a raw value when it is replaced or re-evaluated.
    default: value of action-backed or exhausted-stream states before a step.
    scope: evaluation scope used for dependency tracking.
    """

    map: Callable[[Any], Any] | None = None
    type: str | compare.Comparer | None = None
    dispose: Callable[[Any], None] | None = None
    default: Any = None
    scope: EvaluationScope = field(default=default_scope)

    def __post_init__(self) -> None:
        # Unknown comparer names raise here.
        compare.resolve(self.type)

    @property
    def comparer(self) -> compare.Comparer:
        return compare.resolve(self.type)

    def merge(self, **overrides: Any) -> StateOptions:
        return replace(self, **overrides) if overrides else self
