"""
Checkpoint Logging - structured logging for every long-running process.

Each invocation (run, watch, sweep, watchdog) is its own OS process, so logs
are the only way to correlate what a watcher, a sweep and the watchdog did to
the same project. This module configures structlog once per process and binds
``project`` / ``run_id`` context for the duration of a run.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="checkpoint-sweep")
            │
            ▼
        structlog processor chain:
          1. merge_contextvars   (project, run_id from LogContext)
          2. TimeStamper(iso)
          3. add_log_level / add_logger_name
          4. add_service_metadata
          5. JSONRenderer (not a tty / log file) or ConsoleRenderer (tty)

        logger = get_logger(__name__)
        logger.info("run_completed", outcome="backed_up", duration_s=4.2)

Examples:
    >>> from checkpoint.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", service="checkpoint-watch")
    >>> logger = get_logger(__name__)
    >>> with LogContext(project="web", run_id="a1b2"):
    ...     logger.info("run_started")

Guardrails:
    - Logs go to stderr (or a log file) so ``--json`` output on stdout stays clean
    - Auto-detects JSON vs console based on TTY
    - Service name stored globally (set once at startup)

Tags:
    logging, structlog, observability, checkpoint
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "checkpoint"
_LOG_STREAM: IO[str] | None = None


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "checkpoint",
    log_file: Path | None = None,
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto
            (JSON if stderr is not a tty or a log file is given)
        service: Service name to include in logs
        log_file: Append logs to this file instead of stderr

    Example:
        configure_logging(level="INFO", service="checkpoint-watchdog",
                          log_file=Path("~/.checkpoint/logs/watchdog.log"))
    """
    global _SERVICE_NAME, _LOG_STREAM
    _SERVICE_NAME = service

    stream: IO[str] = sys.stderr
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        if _LOG_STREAM is not None:
            _LOG_STREAM.close()
        _LOG_STREAM = open(log_file, "a", encoding="utf-8")  # noqa: SIM115
        stream = _LOG_STREAM

    if json_format is None:
        json_format = log_file is not None or not stream.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(project="web", run_id="abc123"):
            logger.info("run_started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
