"""Foundation layer: error taxonomy and configuration."""

from .config import FlowgateSettings, GateConfig, clear_settings_cache, get_settings
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
    "FlowgateSettings", "GateConfig", "get_settings", "clear_settings_cache",
    "ErrorCode", "GateError", "ConfigurationError", "GateTimeoutError", "TaskError",
    "CircuitOpenError", "PermitError", "DoubleReleaseError", "SchedulerClosedError",
]
