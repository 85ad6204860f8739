"""Result type for edits that can fail.

Every public transform returns ``Ok(outcome)`` or ``Err(error)``; the
error is an :class:`~tlaedit.errors.EditError` instance describing what
could not be done and why.
"""

from dataclasses import dataclass
from typing import TypeVar, Generic, Union

T = TypeVar("T")
E = TypeVar("E", bound=Exception)

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def kind(self) -> str:
        kind = getattr(self.error, "kind", None)
        return kind.value if kind is not None else type(self.error).__name__

Result = Union[Ok[T], Err[E]]
