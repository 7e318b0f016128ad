"""Tests for folio.core.logging."""

from __future__ import annotations

import structlog

from folio.core.logging import LogContext, bind_context, configure_logging, get_logger, unbind_context


class TestContext:
    def test_log_context_binds_and_unbinds(self):
        with LogContext(schedule_id="s-1", owner=7):
            assert structlog.contextvars.get_contextvars() == {"schedule_id": "s-1", "owner": 7}
        assert "schedule_id" not in structlog.contextvars.get_contextvars()

    def test_bind_and_unbind(self):
        bind_context(fingerprint="fp")
        assert structlog.contextvars.get_contextvars()["fingerprint"] == "fp"
        unbind_context("fingerprint")
        assert "fingerprint" not in structlog.contextvars.get_contextvars()


def test_configure_logging_json():
    configure_logging(level="DEBUG", json_format=True, service="folio-test")
    try:
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert get_logger("folio.test") is not None
    finally:
        structlog.reset_defaults()


def test_configure_logging_console():
    configure_logging(level="warning", json_format=False)
    try:
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
    finally:
        structlog.reset_defaults()
