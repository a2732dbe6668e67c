"""Tests for structured gate logging."""

from __future__ import annotations

import io
import logging

import orjson
import pytest

from flowgate import GateTimeoutError, Semaphore, configure_logging, get_logger
from flowgate.runtime.observability import (
    BoundLogger,
    CapturingRenderer,
    ConsoleRenderer,
    JsonRenderer,
    log_context,
)


class TestBoundLogger:
    def test_bind_merges_context(self) -> None:
        capture = CapturingRenderer()
        log = BoundLogger(context={"gate": "db"}, renderer=capture, level=logging.DEBUG)
        log.bind(attempt=2).info("permit granted", waited_ms=1.5)
        entry = capture.entries[0]
        assert entry.event == "permit granted"
        assert entry.level == "info"
        assert entry.context == {"gate": "db", "attempt": 2, "waited_ms": 1.5}

    def test_unbind(self) -> None:
        log = BoundLogger(context={"a": 1, "b": 2}).unbind("a")
        assert log.context == {"b": 2}

    def test_level_filtering(self) -> None:
        capture = CapturingRenderer()
        log = BoundLogger(renderer=capture, level=logging.WARNING)
        log.debug("hidden")
        log.info("hidden")
        log.warning("shown")
        log.error("shown too")
        assert capture.events() == ["shown", "shown too"]
        assert capture.events("error") == ["shown too"]

    def test_scoped_context(self) -> None:
        capture = CapturingRenderer()
        log = BoundLogger(renderer=capture)
        with log_context(request_id="r-1"):
            log.info("inside")
        log.info("outside")
        assert capture.entries[0].context == {"request_id": "r-1"}
        assert capture.entries[1].context == {}

    def test_get_logger_names_context(self) -> None:
        assert get_logger("flowgate.test", gate="x").context == {"logger": "flowgate.test", "gate": "x"}


class TestRenderers:
    def test_json_lines(self) -> None:
        out = io.StringIO()
        log = BoundLogger(context={"gate": "api"}, renderer=JsonRenderer(output=out))
        log.warning("acquire timed out", timeout=0.5)
        payload = orjson.loads(out.getvalue())
        assert payload["event"] == "acquire timed out"
        assert payload["level"] == "warning"
        assert payload["gate"] == "api"
        assert payload["timeout"] == 0.5
        assert "timestamp" in payload

    def test_console_without_colors(self) -> None:
        out = io.StringIO()
        log = BoundLogger(renderer=ConsoleRenderer(output=out, colors=False))
        log.info("draining", running=2)
        line = out.getvalue()
        assert "[info]" in line
        assert "draining" in line
        assert "running=2" in line

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError):
            configure_logging(format="xml")


class TestGateEvents:
    @pytest.mark.asyncio
    async def test_semaphore_timeout_is_logged(self) -> None:
        capture = CapturingRenderer()
        configure_logging(renderer=capture, level="DEBUG")
        sem = Semaphore(1, name="pool")
        permit = await sem.acquire()
        with pytest.raises(GateTimeoutError):
            await sem.acquire(timeout=0.01)
        sem.release(permit)

        warning = next(e for e in capture.entries if e.level == "warning")
        assert warning.event == "acquire timed out"
        assert warning.context["gate"] == "pool"
        assert warning.context["logger"] == "flowgate.semaphore"
        assert "acquire queued" in capture.events("debug")


def test_configure_from_settings() -> None:
    from flowgate.foundation.config import LoggingSettings
    from flowgate.runtime.observability import NoOpRenderer, configure_from_settings

    renderer = configure_from_settings(LoggingSettings(format="none", level="warning"))
    assert isinstance(renderer, NoOpRenderer)
    assert not get_logger("x").is_enabled_for(logging.INFO)
