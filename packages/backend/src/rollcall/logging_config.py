"""Structured logging setup.

Learn: every module calls structlog.get_logger() and logs event-style
names ("realtime.subscribed") with keyword context. This module wires the
processor chain once at startup: contextvars first (so the request_id bound
by RequestIdMiddleware shows up), then level/timestamp, then a renderer.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "info", fmt: str = "console") -> None:
    """Configure stdlib logging and structlog for the process.

    Args:
        level: Logging level name (debug, info, warning, error).
        fmt: "json" for machine-readable output, anything else for console.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
