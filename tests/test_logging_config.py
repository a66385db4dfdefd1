"""Tests for structured logging configuration.

Run with: pytest tests/test_logging_config.py -v --noconftest
"""

import io
import logging

import structlog

from jobforge.core.logging_config import bind_session_context, configure_logging


def _capture(name: str) -> io.StringIO:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )
    )
    test_logger = logging.getLogger(name)
    test_logger.handlers = [handler]
    test_logger.setLevel(logging.INFO)
    return stream


def test_configure_logging_runs_without_error():
    configure_logging()


def test_noisy_http_loggers_are_quieted():
    configure_logging()

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_structlog_contextvars_propagate():
    configure_logging()
    stream = _capture("test.contextvars")

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id="test-123")

    logging.getLogger("test.contextvars").info("hello with context")

    output = stream.getvalue()
    assert "request_id" in output
    assert "test-123" in output

    structlog.contextvars.clear_contextvars()


def test_session_context_binds_preview_ids():
    configure_logging()
    stream = _capture("test.session")

    structlog.contextvars.clear_contextvars()
    bind_session_context(editor_id="ed-1", job_id="job_1")

    logging.getLogger("test.session").info("polling")

    output = stream.getvalue()
    assert '"editor_id": "ed-1"' in output
    assert '"job_id": "job_1"' in output

    structlog.contextvars.clear_contextvars()


def test_session_context_skips_missing_ids():
    structlog.contextvars.clear_contextvars()

    bind_session_context(editor_id="ed-1")

    assert structlog.contextvars.get_contextvars() == {"editor_id": "ed-1"}
    structlog.contextvars.clear_contextvars()
