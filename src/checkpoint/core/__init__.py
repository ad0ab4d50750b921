"""Checkpoint Core -- shared primitives for every checkpoint process.

Architecture::

    errors.py      Structured error hierarchy (CheckpointError, LockBusyError, ...)
    logging.py     structlog configuration, get_logger, LogContext
    settings.py    CheckpointSettings (pydantic-settings, CHECKPOINT_ prefix)
    fileio.py      Atomic temp-file-then-rename writes
    process.py     PID + start-time identity and liveness (psutil)
    hashing.py     Deterministic project ids
    signals.py     SIGTERM/SIGHUP handling for clean shutdown
"""

from checkpoint.core.errors import CheckpointError, ErrorCategory, ErrorContext
from checkpoint.core.logging import LogContext, configure_logging, get_logger
from checkpoint.core.settings import CheckpointSettings

__all__ = [
    "CheckpointError",
    "CheckpointSettings",
    "ErrorCategory",
    "ErrorContext",
    "LogContext",
    "configure_logging",
    "get_logger",
]
