"""Structured logging configuration for LazyCoder.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Project and run context binding

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission.

Example usage:
    >>> import structlog
    >>> from lazycoder.config import LoggingConfig
    >>> from lazycoder.logging import setup_logging, bind_project_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="json"))
    >>> logger = structlog.get_logger(__name__)
    >>> bind_project_context(project_id="4f1c...", project_name="three-tier")
    >>> logger.info("stage_started", stage="analyze")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

import structlog

from lazycoder.config import LoggingConfig


def bind_project_context(project_id: str, project_name: str | None = None) -> None:
    """Bind project identity to all subsequent logs in the current context.

    Args:
        project_id: Project identifier to bind
        project_name: Optional human-friendly project name
    """
    context = {"project_id": project_id}
    if project_name is not None:
        context["project_name"] = project_name
    structlog.contextvars.bind_contextvars(**context)


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    Sets up JSON or console rendering, optional rotating file output,
    timestamp/level/logger-name processors and contextvars merging.

    Args:
        config: Logging configuration from LazyCoderConfig
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        # stderr keeps stdout free for CLI output
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            # project_id and friends from bind_project_context
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
