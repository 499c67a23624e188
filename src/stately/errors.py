"""Exceptions raised by the state engine.

Errors raised by user evaluators are never wrapped: the original exception is
cached on the node and re-raised on every read until ``reset()``.
"""


class StateError(RuntimeError):
    """Base class for misuse of the state engine."""


class NestedMutationError(StateError):
    """A state was mutated while another state was being evaluated."""


class CyclicReadError(StateError):
    """A state was read while its own evaluator was running."""


class InvalidSourceError(StateError, TypeError):
    """A value passed where a state or subscribable was expected."""
