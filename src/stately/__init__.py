"""stately: memoized, lazily evaluated reactive state with automatic dependency tracking."""

from importlib.metadata import version as _version

__version__ = _version("stately")

from stately.errors import (
    StateError,
    NestedMutationError,
    CyclicReadError,
    InvalidSourceError,
)
from stately.result import Kind, Ok, Err
from stately.memo import ArgKeyedMemo
from stately.emitter import Emitter
from stately.scope import EvaluationScope, default_scope
from stately.options import StateOptions
from stately.loadable import Deferred, Loadable, Cancellable
from stately.node import StateNode
from stately.family import StateFamily
from stately.compose import Builder, StateList, state, builder, from_, validate_states
# textual is not auto-imported (opt-in)

__all__ = [
    "state",
    "builder",
    "from_",
    "validate_states",
    "Builder",
    "StateList",
    "StateFamily",
    "StateNode",
    "StateOptions",
    "EvaluationScope",
    "default_scope",
    "ArgKeyedMemo",
    "Emitter",
    "Deferred",
    "Loadable",
    "Cancellable",
    "Kind",
    "Ok",
    "Err",
    "StateError",
    "NestedMutationError",
    "CyclicReadError",
    "InvalidSourceError",
]
