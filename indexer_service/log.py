"""
Structured logging setup.

Loggers are created once and handed to each component explicitly;
components derive child loggers with ``logger.bind(component=...)``.
"""

import logging
from typing import Any

import structlog

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str = "info", json_logs: bool = False) -> None:
    """Configure structlog for the whole process."""
    try:
        level_num = LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None

    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        cache_logger_on_first_use=False,
    )


def create_logger(app_name: str) -> Any:
    """Create the root logger for an application."""
    return structlog.get_logger().bind(app_name=app_name)
