"""Error taxonomy for parsing and edit requests.

Every failure the engine reports is an :class:`EditError`.  Parsing raises
:class:`TlaSyntaxError` directly; transforms raise the precondition errors
internally and hand them back to the caller wrapped in ``Err``.  None of
them leave a partially edited module behind.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .syntax import Module
    from .validate import Violation


class ErrorKind(Enum):
    SYNTAX = "syntax_error"
    DUPLICATE_NAME = "duplicate_name"
    NOT_FOUND = "not_found"
    AMBIGUOUS_NAME = "ambiguous_name"
    NOT_SPLITTABLE = "not_splittable"
    COLLISION_UNRESOLVABLE = "collision_unresolvable"
    MISSING_TYPE = "missing_type"
    VIOLATION = "violation"


class EditError(Exception):
    """Base class for every error the engine reports."""

    kind: ErrorKind = ErrorKind.VIOLATION

    def __init__(self, message: str, location: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location:
            return f"{self.message} (at {self.location})"
        return self.message


class TlaSyntaxError(EditError):
    """Malformed module or expression text."""

    kind = ErrorKind.SYNTAX

    def __init__(
        self,
        message: str,
        offset: int,
        line: int,
        column: int,
        expected: str | None = None,
    ) -> None:
        super().__init__(message, f"line {line}, column {column}")
        self.offset = offset
        self.line = line
        self.column = column
        self.expected = expected

    def __str__(self) -> str:
        base = f"{self.message} at line {self.line}, column {self.column}"
        if self.expected:
            return f"{base} (expected {self.expected})"
        return base


class DuplicateName(EditError):
    kind = ErrorKind.DUPLICATE_NAME


class NotFound(EditError):
    kind = ErrorKind.NOT_FOUND


class AmbiguousName(EditError):
    kind = ErrorKind.AMBIGUOUS_NAME


class NotSplittable(EditError):
    kind = ErrorKind.NOT_SPLITTABLE


class CollisionUnresolvable(EditError):
    kind = ErrorKind.COLLISION_UNRESOLVABLE


class MissingType(EditError):
    kind = ErrorKind.MISSING_TYPE


class ConsistencyError(EditError):
    """A transform produced a module that breaks the coverage invariant.

    The edited module is discarded; ``original`` is the untouched input.
    """

    kind = ErrorKind.VIOLATION

    def __init__(
        self,
        message: str,
        violations: Sequence[Violation],
        original: Module,
    ) -> None:
        super().__init__(message)
        self.violations = tuple(violations)
        self.original = original
