"""Standardized error taxonomy for gates.

Every public operation either returns a result or raises one of the
typed errors below. Gate-internal errors (configuration, permit misuse)
are programming defects and are never recoverable; timeouts and open
circuits are expected conditions the caller may retry or route around.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Self


class ErrorCode(StrEnum):
    """Machine-readable error codes for gate failures.

    Used for programmatic error handling and retry decisions.
    """
    CONFIGURATION = "CONFIGURATION"
    TIMEOUT = "TIMEOUT"
    TASK_FAILED = "TASK_FAILED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    PERMIT_INVALID = "PERMIT_INVALID"
    DOUBLE_RELEASE = "DOUBLE_RELEASE"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"


# Pre-computed recoverable codes for O(1) lookup
_RECOVERABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.TIMEOUT,
    ErrorCode.TASK_FAILED,
    ErrorCode.CIRCUIT_OPEN,
})


class GateError(Exception):
    """Base exception for all flowgate failures.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        recoverable: Whether the caller might succeed by retrying later
    """

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    @property
    def recoverable(self) -> bool:
        return self.code in _RECOVERABLE_CODES

    def to_dict(self) -> dict[str, object]:
        """Serialize for structured logs."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "recoverable": self.recoverable,
        }


class ConfigurationError(GateError, ValueError):
    """Invalid construction parameters. Raised at construction, never retried."""

    code = ErrorCode.CONFIGURATION

    @classmethod
    def invalid(cls, field: str, value: object, requirement: str) -> Self:
        return cls(f"Invalid {field}={value!r}: {requirement}")


class GateTimeoutError(GateError, TimeoutError):
    """An acquisition or a wrapped call exceeded its deadline."""

    code = ErrorCode.TIMEOUT

    def __init__(self, operation: str, timeout: float | None) -> None:
        super().__init__(f"{operation} timed out after {timeout}s")
        self.operation = operation
        self.timeout = timeout


class TaskError(GateError):
    """Failure raised by user-supplied work, isolated to a single task.

    The original exception is available as ``cause`` and is also chained
    as ``__cause__`` when the error is raised.
    """

    code = ErrorCode.TASK_FAILED

    def __init__(self, task_name: str, cause: BaseException) -> None:
        super().__init__(f"Task '{task_name}' failed: {type(cause).__name__}: {cause}")
        self.task_name = task_name
        self.cause = cause

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "task": self.task_name, "cause": type(self.cause).__name__}


class CircuitOpenError(GateError):
    """Call rejected without execution because the breaker is open."""

    code = ErrorCode.CIRCUIT_OPEN

    def __init__(self, breaker: str, retry_after: float | None) -> None:
        detail = f", retry after {retry_after:.3f}s" if retry_after is not None else ""
        super().__init__(f"Circuit '{breaker}' is open{detail}")
        self.breaker = breaker
        self.retry_after = retry_after


class PermitError(GateError):
    """A permit was released by someone who does not hold it."""

    code = ErrorCode.PERMIT_INVALID


class DoubleReleaseError(PermitError):
    """A permit was released more than once."""

    code = ErrorCode.DOUBLE_RELEASE


class SchedulerClosedError(GateError):
    """Work was submitted to a scheduler that is draining or drained."""

    code = ErrorCode.CLOSED
