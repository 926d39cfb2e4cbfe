"""Unit tests for the structlog setup in coursemind.utils.logging."""

from __future__ import annotations

import logging

import structlog
from structlog.testing import capture_logs

from coursemind.utils.logging import configure_logging, get_logger


class TestConfigureLogging:
    def test_stdlib_root_gets_single_structlog_handler(self) -> None:
        configure_logging(log_level="warning", json_output=True)
        configure_logging(log_level="warning", json_output=True)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
        assert root.level == logging.WARNING

        configure_logging()
        assert root.level == logging.INFO


class TestGetLogger:
    def test_events_carry_logger_name(self) -> None:
        configure_logging()
        with capture_logs() as logs:
            get_logger("coursemind.pipeline.scheduler").info("job_claimed", attempts=2)

        assert logs == [
            {
                "event": "job_claimed",
                "log_level": "info",
                "logger_name": "coursemind.pipeline.scheduler",
                "attempts": 2,
            }
        ]
