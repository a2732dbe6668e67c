"""Resilience: circuit breaking for failing dependencies."""

from .breaker import BreakerConfig, CircuitBreaker, CircuitState, CircuitStats, State

__all__ = ["BreakerConfig", "CircuitBreaker", "CircuitState", "CircuitStats", "State"]
