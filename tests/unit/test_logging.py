"""Tests for structlog processors and context helpers."""

import pytest
import structlog
from structlog import DropEvent

from book_aggregator.infrastructure.logging import (
    CleanConsoleRenderer,
    LogContext,
    censor_secrets,
    filter_noise,
)


class TestProcessors:

    def test_noise_dropped(self):
        with pytest.raises(DropEvent):
            filter_noise(None, "info", {"event": "Rate limit wait", "exchange": "gemini"})

    def test_debug_dropped(self):
        with pytest.raises(DropEvent):
            filter_noise(None, "debug", {"event": "Anything"})

    def test_regular_event_kept(self):
        event = {"event": "Aggregation complete"}
        assert filter_noise(None, "info", event) is event

    def test_secrets_censored(self):
        event = {"event": "x", "api_key": "abc", "nested": {"password": "p", "ok": 1}}
        censored = censor_secrets(None, "info", event)

        assert censored["api_key"] == "[REDACTED]"
        assert censored["nested"] == {"password": "[REDACTED]", "ok": 1}


def test_clean_renderer_line():
    line = CleanConsoleRenderer()(
        None, "warning", {"event": "Crossed book", "level": "WARNING", "timestamp": "t", "best_bid": "105"}
    )

    assert "WARNING" in line
    assert line.endswith("Crossed book best_bid=105")


def test_log_context_binds_and_unbinds():
    structlog.contextvars.clear_contextvars()
    with LogContext(cycle_id=7, pair="BTC-USD"):
        assert structlog.contextvars.get_contextvars() == {"cycle_id": 7, "pair": "BTC-USD"}
    assert "cycle_id" not in structlog.contextvars.get_contextvars()
