"""Process-wide gate defaults read from FLOWGATE_* environment variables.

Each gate family has its own settings group with its own prefix, so a
deployment can tune one family without touching the rest::

    FLOWGATE_SCHEDULER_MAX_CONCURRENCY=4
    FLOWGATE_RATELIMIT_POLICY=sliding-window
    FLOWGATE_RETRY_MAX_ATTEMPTS=5
    FLOWGATE_BREAKER_RESET_TIMEOUT=10
    FLOWGATE_LOG_FORMAT=json

The same names work in a ``.env`` file in the working directory. The
nested form ``FLOWGATE_SCHEDULER__MAX_CONCURRENCY=4`` is accepted too; once a
group has any nested variable, it is built from its nested variables alone.

Gates read these only through their ``from_settings`` constructors; a
gate built with explicit arguments never looks at the environment.

    >>> get_settings().scheduler.max_concurrency
    10
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, NonNegativeFloat, PositiveFloat, PositiveInt, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _group(prefix: str) -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=f"FLOWGATE_{prefix}_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class SchedulerSettings(BaseSettings):
    model_config = _group("SCHEDULER")

    max_concurrency: PositiveInt = 10
    priority_enabled: bool = False


class RateLimitSettings(BaseSettings):
    """Defaults for ``create_limiter``; only the active policy's fields are used."""

    model_config = _group("RATELIMIT")

    policy: Literal["token-bucket", "sliding-window"] = "token-bucket"
    rate: PositiveFloat = Field(default=10.0, description="Tokens added per second")
    capacity: PositiveInt = Field(default=10, description="Bucket size, and the largest single request")
    limit: PositiveInt = Field(default=100, description="Acquisitions allowed per window")
    window_size: PositiveFloat = Field(default=60.0, description="Window length in seconds")

    @field_validator("policy", mode="before")
    @classmethod
    def _canonical_policy(cls, v: object) -> object:
        return v.lower().replace("_", "-") if isinstance(v, str) else v


class RetrySettings(BaseSettings):
    model_config = _group("RETRY")

    max_attempts: Annotated[int, Field(ge=1, le=20)] = 3
    base_delay: PositiveFloat = 0.1
    max_delay: PositiveFloat = 30.0
    factor: Annotated[float, Field(ge=1.0)] = 2.0
    jitter: bool = True


class BreakerSettings(BaseSettings):
    model_config = _group("BREAKER")

    threshold: PositiveInt = Field(default=5, description="Consecutive failures that open the circuit")
    reset_timeout: NonNegativeFloat = Field(default=30.0, description="Seconds OPEN before a trial call")
    timeout: PositiveFloat | None = Field(default=None, description="Per-call limit in seconds")


class LoggingSettings(BaseSettings):
    """FLOWGATE_LOG_LEVEL is case-insensitive; FLOWGATE_LOG_FORMAT=none silences gates."""

    model_config = _group("LOG")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _canonical_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class FlowgateSettings(BaseSettings):
    """All settings groups. Each group also reads ``.env`` on its own."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> FlowgateSettings:
    """Settings loaded on first use and cached for the process."""
    return FlowgateSettings()


def clear_settings_cache() -> None:
    """Forget cached settings so the next ``get_settings()`` rereads the environment."""
    get_settings.cache_clear()
