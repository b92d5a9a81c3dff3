"""Tests for logging utilities."""

from __future__ import annotations

import logging

from nudge_ai.core.config import LoggingSettings
from nudge_ai.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="debug", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("nudge_ai").level == logging.DEBUG


def test_structured_format_renders_key_values() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))
    handler = logging.getLogger().handlers[0]
    record = logging.LogRecord(
        "nudge_ai.test", logging.INFO, __file__, 1, "hello %s", ("world",), None
    )
    rendered = handler.format(record)
    assert "level=INFO" in rendered
    assert "logger=nudge_ai.test" in rendered
    assert "msg='hello world'" in rendered


def test_httpx_logger_quietened() -> None:
    configure_logging(LoggingSettings(level="DEBUG"))
    assert logging.getLogger("httpx").level == logging.WARNING
