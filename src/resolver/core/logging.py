"""Structured logging configuration for the feedback resolver.

Uses structlog for JSON-formatted logs to stderr. Every pipeline run binds a
run ID via contextvars so all log entries from one run can be traced together.

Usage:
    from resolver.core.logging import get_logger, set_run_id

    logger = get_logger(__name__)

    # In the pipeline:
    set_run_id(str(uuid.uuid4()))

    # Log with automatic run ID inclusion:
    logger.info("item_triaged", item_id="file-3f2a", is_relevant=True)
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)


def set_run_id(run_id: str | None) -> None:
    """Set the run ID for the current context.

    Args:
        run_id: UUID string for this pipeline run, or None to clear
    """
    _run_id.set(run_id)


def get_run_id() -> str | None:
    """Get the current run ID, if set."""
    return _run_id.get()


def add_run_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor to add the run ID to log entries."""
    run_id = _run_id.get()
    if run_id is not None:
        event_dict["run_id"] = run_id
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the application.

    Logs go to stderr so that stdout stays clean for reports and JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_output: If True, output JSON; if False, output human-readable format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_run_id,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A structlog BoundLogger instance configured for this application
    """
    return structlog.get_logger(name)
