"""Structured logging configuration via structlog.

Uses structlog.contextvars for async-safe context. HTTP requests bind
request_id; preview tasks bind editor_id and job_id so every poll and
stream log line can be traced back to its session.
Wraps stdlib logging so existing logging.getLogger(__name__) calls get structured output.
"""

import logging
import sys

import structlog

from jobforge.core.config import settings

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def configure_logging() -> None:
    """Configure structlog as the logging backend. Call once at app startup."""
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.app_env == "development":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    # httpx logs one line per status poll
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_session_context(editor_id: str | None = None, job_id: str | None = None) -> None:
    """Bind preview identifiers to the current task's log context.

    asyncio tasks copy the context at creation, so values bound inside a
    preview task never leak into the request that started it.
    """
    values = {}
    if editor_id is not None:
        values["editor_id"] = editor_id
    if job_id is not None:
        values["job_id"] = job_id
    if values:
        structlog.contextvars.bind_contextvars(**values)
