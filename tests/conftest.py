"""Shared fixtures for gate tests."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest

from flowgate.runtime.observability import NoOpRenderer, configure_logging


class FakeClock:
    """Manually advanced monotonic clock with a matching async sleep."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Silence gate logs unless a test installs its own renderer."""
    configure_logging(renderer=NoOpRenderer(), level="INFO")
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
