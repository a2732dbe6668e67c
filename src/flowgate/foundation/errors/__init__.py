"""Unified error handling for flowgate.

- ErrorCode: Standard error codes for gate failures
- GateError: Base exception carrying a code and recoverability
- ConfigurationError, GateTimeoutError, TaskError, CircuitOpenError,
  PermitError, DoubleReleaseError, SchedulerClosedError
"""

from .errors import (
    CircuitOpenError,
    ConfigurationError,
    DoubleReleaseError,
    ErrorCode,
    GateError,
    GateTimeoutError,
    PermitError,
    SchedulerClosedError,
    TaskError,
)

__all__ = [
    "ErrorCode", "GateError",
    # Defects
    "ConfigurationError", "PermitError", "DoubleReleaseError",
    # Recoverable
    "GateTimeoutError", "TaskError", "CircuitOpenError", "SchedulerClosedError",
]
