"""Logging configuration for persona-chat.

Uses structlog for structured logging with context propagation. A turn
runs inside ``turn_context`` so every line logged while handling it
carries its agent, user and session ids, and nothing leaks into the
next turn handled by the same task.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import structlog
from structlog.types import Processor


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Use JSON format (for production) or console format (for dev).
        log_file: Optional path to write logs to file.
    """
    # stderr keeps log lines out of the REPL's conversation output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )

    # Shared processors for all outputs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        # Production: JSON output
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Development: colored console output
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Add file handler if specified
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level.upper()))

        # File logs always use JSON format
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=shared_processors,
        )
        file_handler.setFormatter(file_formatter)
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Turn completed", session_id=42)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to the current context.

    Inside ``turn_context`` the binding lasts until the block exits.

    Example:
        >>> bind_context(session_id=42)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def current_context() -> dict[str, Any]:
    """Context variables bound in the current context."""
    return structlog.contextvars.get_contextvars()


@contextmanager
def turn_context(**kwargs: Any) -> Iterator[None]:
    """Bind context variables for the duration of a block.

    On exit the context is restored to what it was on entry, which also
    drops keys bound inside the block with ``bind_context``.

    Example:
        >>> with turn_context(agent_id=7, user_id="u-1"):
        ...     bind_context(session_id=42)
        ...     log.info("Resolving session")  # carries all three ids
    """
    previous = current_context()
    structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.clear_contextvars()
        if previous:
            structlog.contextvars.bind_contextvars(**previous)
