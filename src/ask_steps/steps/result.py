"""Tagged values emitted by a running step.

A step emits any number of ``Partial`` results followed by exactly one
terminal result, either ``Final`` or ``Error``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ResultKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


@dataclass(frozen=True)
class StepResult(Generic[T]):
    kind: ResultKind
    _value: T | None = None
    cause: BaseException | None = None

    @classmethod
    def partial(cls, value: T) -> "StepResult[T]":
        return cls(ResultKind.PARTIAL, value)

    @classmethod
    def final(cls, value: T) -> "StepResult[T]":
        return cls(ResultKind.FINAL, value)

    @classmethod
    def error(cls, cause: BaseException) -> "StepResult[T]":
        if cause is None:
            raise ValueError("an error result needs a cause")
        return cls(ResultKind.ERROR, None, cause)

    @property
    def is_partial(self) -> bool:
        return self.kind is ResultKind.PARTIAL

    @property
    def is_final(self) -> bool:
        return self.kind is ResultKind.FINAL

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR

    @property
    def is_terminal(self) -> bool:
        return self.kind is not ResultKind.PARTIAL

    @property
    def ok(self) -> bool:
        return not self.is_error

    def value(self) -> T:
        """Return the carried value, raising the cause for an error result."""
        if self.is_error:
            raise self.cause
        return self._value

    def __repr__(self) -> str:
        if self.is_error:
            return f"StepResult.error({self.cause!r})"
        return f"StepResult.{self.kind.value}({self._value!r})"
