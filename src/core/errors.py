"""Error classification and uniform operation results for store-backed operations."""

from enum import Enum
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ErrorKind(Enum):
    """Categories of failures an operation can report to its caller."""

    NOT_FOUND = "not_found"
    WRITE_CONFLICT = "write_conflict"
    TRANSPORT_FAILURE = "transport_failure"
    INVALID_INPUT = "invalid_input"


class OperationResult(BaseModel, Generic[T]):
    """Outcome of a chore/group operation.

    `ok` is the success flag; on failure `error` names the kind and `message`
    carries a human-readable description. Precondition no-ops (e.g. a repeated
    vote) are successful results carrying the unchanged value.
    """

    ok: bool
    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, value: T | None = None, message: str = "") -> "OperationResult[T]":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "OperationResult[T]":
        return cls(ok=False, error=error, message=message)


_ERROR_PATTERNS: dict[
    Literal["not_found", "conflict", "invalid"],
    dict[str, list[str] | set[str]],
] = {
    "not_found": {
        "phrases": ["not found", "no such document"],
        "exception_types": {"RecordNotFoundError", "KeyError"},
    },
    "conflict": {
        "phrases": ["database is locked", "conflict", "busy"],
        "exception_types": {"TransactionConflictError"},
    },
    "invalid": {
        "phrases": ["invalid filter", "invalid collection", "unsupported operator"],
        "exception_types": {"ValueError", "ValidationError"},
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["not_found", "conflict", "invalid"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_store_error(exception: Exception) -> ErrorKind:
    """Classify a document store exception into an ErrorKind.

    Args:
        exception: The exception raised by the document store

    Returns:
        The matching ErrorKind, TRANSPORT_FAILURE when nothing more specific applies
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="not_found"):
        return ErrorKind.NOT_FOUND

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="conflict"):
        return ErrorKind.WRITE_CONFLICT

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="invalid"):
        return ErrorKind.INVALID_INPUT

    return ErrorKind.TRANSPORT_FAILURE


def failed_result(exception: Exception, action: str) -> OperationResult:
    """Build a failed OperationResult from a store exception."""
    return OperationResult.failure(classify_store_error(exception), f"Failed to {action}: {exception}")
