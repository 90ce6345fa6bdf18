"""
Structured logging configuration using structlog.

Pipeline events and standard-library records (SQLAlchemy statement echo,
pandas and openpyxl warnings) share one handler, so a production run
emits a single JSON stream.
"""

import logging
import sys
from typing import Any, TextIO

import structlog

SQL_LOGGER = "sqlalchemy.engine"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    *,
    stream: TextIO | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Replaces the root handler with one that renders both structlog events
    and foreign stdlib records, and captures Python warnings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output logs as JSON (useful for production).
        stream: Output stream; defaults to stdout.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    shared_processors = _shared_processors()

    renderer: structlog.types.Processor
    if json_output:
        # Ingestion runs unattended in production; logs go to an aggregator
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None and sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    logging.captureWarnings(True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def route_sql_echo(enabled: bool) -> None:
    """
    Log executed SQL through the application's handler.

    Used instead of create_engine(echo=True), which attaches a plain
    handler of its own to the SQLAlchemy logger.

    Args:
        enabled: Whether statements are logged at INFO.
    """
    logging.getLogger(SQL_LOGGER).setLevel(logging.INFO if enabled else logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        Configured structlog logger.
    """
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """
    Bind job_id, table and file (or any other keys) to every log line
    emitted inside the block, including SQLAlchemy's own records.

    Args:
        **kwargs: Key-value pairs to add to log context.

    Returns:
        Context manager that binds the values.
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
