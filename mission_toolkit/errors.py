"""Error types and Result container for Mission Toolkit.

Engines return expected failures instead of raising them:

    result = manager.add("Ship v1", "feature")
    if result.is_err():
        print(format_error(result.unwrap_err()))

Every error carries a kind (see ErrorKind), a human-readable message,
a free-form context dict, and optionally the error it wraps. The chain
of wrapped errors is rendered on a single line by format_error().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class ErrorKind:
    """Error kinds shared by all engines."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    IO_ERROR = "io_error"
    CONFLICT = "conflict"

    ALL = frozenset({INVALID_ARGUMENT, NOT_FOUND, MALFORMED, IO_ERROR, CONFLICT})


@dataclass(frozen=True)
class MissionError:
    """A structured, chainable error value."""

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: MissionError | None = None

    def wrap(self, message: str, **context: Any) -> MissionError:
        """Return a new error of the same kind that wraps this one."""
        return MissionError(
            code=self.code,
            message=message,
            context=context,
            cause=self,
        )

    def chain(self) -> list[MissionError]:
        """Errors from outermost to innermost."""
        errors: list[MissionError] = []
        current: MissionError | None = self
        while current is not None:
            errors.append(current)
            current = current.cause
        return errors

    def root(self) -> MissionError:
        """Innermost error of the chain."""
        return self.chain()[-1]

    def __str__(self) -> str:
        return format_error(self)


class MissionException(Exception):
    """Raised by Result.unwrap() on an Err."""

    def __init__(self, error: MissionError):
        super().__init__(format_error(error))
        self.error = error


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self):
        raise ValueError("Called unwrap_err() on an Ok result")


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed result."""

    error: E

    @property
    def ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self):
        if isinstance(self.error, MissionError):
            raise MissionException(self.error)
        raise ValueError(f"Called unwrap() on an Err result: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


def ok(value: T) -> Ok[T]:
    """Wrap a value in Ok."""
    return Ok(value)


def err(error: E) -> Err[E]:
    """Wrap an error in Err."""
    return Err(error)


# =============================================================================
# Constructors per kind
# =============================================================================


def invalid_argument(message: str, **context: Any) -> MissionError:
    return MissionError(code=ErrorKind.INVALID_ARGUMENT, message=message, context=context)


def not_found(message: str, **context: Any) -> MissionError:
    return MissionError(code=ErrorKind.NOT_FOUND, message=message, context=context)


def malformed(message: str, **context: Any) -> MissionError:
    return MissionError(code=ErrorKind.MALFORMED, message=message, context=context)


def io_error(message: str, **context: Any) -> MissionError:
    return MissionError(code=ErrorKind.IO_ERROR, message=message, context=context)


def conflict(message: str, **context: Any) -> MissionError:
    return MissionError(code=ErrorKind.CONFLICT, message=message, context=context)


def format_error(error: MissionError) -> str:
    """Render an error and its causes on one line.

    Example:
        "reading diagnosis: diagnosis file not found: .mission/diagnosis.md"
    """
    return ": ".join(e.message for e in error.chain())
