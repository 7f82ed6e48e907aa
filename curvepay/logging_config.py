"""
Structured logging setup shared by the CLI entry points
"""

import logging

import structlog

from curvepay.config import get_logging_config


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog with ISO timestamps and the configured renderer"""
    config = get_logging_config()
    level = level or config.log_level
    fmt = fmt or config.log_format

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
    )
