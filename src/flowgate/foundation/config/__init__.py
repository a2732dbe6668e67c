"""Configuration management using pydantic-settings.

Provides environment-based gate defaults and the frozen base model
used by every gate's configuration object.
"""

from .model import GateConfig
from .settings import (
    BreakerSettings,
    FlowgateSettings,
    LoggingSettings,
    RateLimitSettings,
    RetrySettings,
    SchedulerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "BreakerSettings",
    "FlowgateSettings",
    "GateConfig",
    "LoggingSettings",
    "RateLimitSettings",
    "RetrySettings",
    "SchedulerSettings",
    "clear_settings_cache",
    "get_settings",
]
