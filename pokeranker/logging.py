"""Structured logging configuration for pokeranker.

Two renderers are supported:
- JSON renderer for services that ship logs to a collector
- Console renderer for local sessions and debugging

The engine itself never configures logging; the host application calls
``configure_logging`` once at startup.
"""

import logging

import structlog
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    add_log_level,
    format_exc_info,
)


def configure_logging(cli_mode: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog with the appropriate renderer.

    Args:
        cli_mode: If True, use the colored console renderer.
                  If False, use the JSON renderer.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    processors = [
        add_log_level,
        TimeStamper(fmt="iso"),
        StackInfoRenderer(),
        format_exc_info,
    ]

    if cli_mode:
        # ConsoleRenderer uses Rich for tracebacks when it is installed
        from structlog.dev import ConsoleRenderer
        renderer = ConsoleRenderer(colors=True)
    else:
        renderer = JSONRenderer()

    processors.append(renderer)

    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()
