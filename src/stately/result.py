"""Tagged cache slots and result kinds."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar

T = TypeVar("T")


class Kind(enum.Enum):
    """Shape of an evaluator's result, decided once per evaluation."""

    VALUE = "value"
    DEFERRED = "deferred"
    STREAM = "stream"
    ASYNC_STREAM = "async_stream"
    ACTION = "action"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    error: Exception

    def unwrap(self) -> NoReturn:
        raise self.error
