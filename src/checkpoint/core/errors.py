"""
Structured error types for checkpoint.

Provides a typed hierarchy of errors carrying the metadata the orchestrator
needs to decide whether a failure is fatal to one project, skipped silently,
healed locally, or escalated through the watchdog.

Every CheckpointError carries:
- **Category:** What kind of failure (config, lock, execution, heartbeat, ...)
- **Retryable:** Whether the next trigger or sweep may succeed unchanged
- **Context:** Structured metadata (project, lock key, path, pid, exit code)
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Typed Error Hierarchy:** One error type per failure mode
    - **Explicit Skip Semantics:** Sweeps continue past per-project errors
    - **Rich Context:** Errors carry metadata for logging and notifications
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      CheckpointError                             │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          LockError            ExecutionError        │
        │  (CONFIG)             (LOCK)               (EXECUTION)           │
        │       │                   │                     │                │
        │  ConfigMissing        LockBusy             ExecutionFailed       │
        │  DirectoryMissing     LockStale                                  │
        │  RetentionConfig                                                 │
        │                                                                  │
        │  HeartbeatError       EnvironmentNotReady  RegistryError         │
        │  (HEARTBEAT)          (ENVIRONMENT)        (STORAGE)             │
        │       │                                                          │
        │  HeartbeatStale       DaemonLifecycleError                       │
        │  HeartbeatMissing     (LIFECYCLE)                                │
        └─────────────────────────────────────────────────────────────────┘

Handling:
    ConfigMissing/DirectoryMissing  fatal to that project, sweep continues
    LockBusy                        non-fatal skip
    LockStale                       auto-healed, only logged
    ExecutionFailed                 exit code captured and counted
    HeartbeatStale/Missing          watchdog escalation only
    EnvironmentNotReady             skipped silently, retried next trigger

Examples:
    >>> error = LockBusyError("project-1", owner_pid=4242)
    >>> error.retryable
    True
    >>> error.to_dict()["context"]["owner_pid"]
    4242

Tags:
    error-handling, exception-hierarchy, checkpoint, observability
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"                # Missing config, project dir, bad tiers
    LOCK = "LOCK"                    # Run/sweep lock contention
    EXECUTION = "EXECUTION"          # Execution pipeline failures
    HEARTBEAT = "HEARTBEAT"          # Stale or missing heartbeat
    ENVIRONMENT = "ENVIRONMENT"      # Backup medium not attached, etc.
    STORAGE = "STORAGE"              # Registry/state file errors
    LIFECYCLE = "LIFECYCLE"          # Daemon scheduler failures
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover what the orchestrator logs for every failure; anything
    else goes into ``metadata``. ``to_dict()`` serializes non-None fields.

    Attributes:
        project: Project name or id the error belongs to
        lock_key: Lock key involved in a contention error
        path: Filesystem path involved
        pid: Process id involved (lock owner, daemon)
        exit_code: Execution pipeline exit code
        metadata: Additional key-value pairs
    """

    project: str | None = None
    lock_key: str | None = None
    path: str | None = None
    pid: int | None = None
    exit_code: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["project", "lock_key", "path", "pid", "exit_code"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CheckpointError(Exception):
    """
    Base exception for all checkpoint errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    can route on type alone.

    Examples:
        >>> error = CheckpointError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = CheckpointError("Run failed").with_context(project="web", exit_code=2)
        >>> error.context.exit_code
        2
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CheckpointError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ConfigMissingError(path).with_context(project="web")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (fatal to one project)
# =============================================================================


class ConfigError(CheckpointError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ConfigMissingError(ConfigError):
    """A project's backup configuration marker is missing."""

    def __init__(self, path: str, message: str | None = None):
        super().__init__(message or f"Backup configuration not found: {path}")
        self.context.path = path


class DirectoryMissingError(ConfigError):
    """A registered project directory no longer exists."""

    def __init__(self, path: str, message: str | None = None):
        super().__init__(message or f"Project directory not found: {path}")
        self.context.path = path


class RetentionConfigError(ConfigError):
    """Retention tiers are not strictly widening."""

    pass


# =============================================================================
# LOCK ERRORS
# =============================================================================


class LockError(CheckpointError):
    """Run or sweep lock error."""

    default_category = ErrorCategory.LOCK
    default_retryable = True


class LockBusyError(LockError):
    """A live owner holds the lock; the caller should skip."""

    def __init__(self, key: str, owner_pid: int | None = None):
        owner = f" (pid {owner_pid})" if owner_pid else ""
        super().__init__(f"Lock {key!r} is held by another process{owner}")
        self.key = key
        self.owner_pid = owner_pid
        self.context.lock_key = key
        self.context.metadata["owner_pid"] = owner_pid


class LockStaleError(LockError):
    """A lock whose recorded owner is no longer live. Healed by reclaiming."""

    def __init__(self, key: str, owner_pid: int | None = None, reason: str = "dead"):
        super().__init__(f"Stale lock {key!r} from pid {owner_pid} ({reason})")
        self.key = key
        self.owner_pid = owner_pid
        self.reason = reason
        self.context.lock_key = key
        self.context.pid = owner_pid


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionFailedError(CheckpointError):
    """The execution pipeline exited non-zero or could not be started."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = True

    def __init__(self, message: str, *, exit_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.context.exit_code = exit_code


# =============================================================================
# HEARTBEAT ERRORS (watchdog escalation path)
# =============================================================================


class HeartbeatError(CheckpointError):
    """Heartbeat could not be trusted."""

    default_category = ErrorCategory.HEARTBEAT
    default_retryable = True


class HeartbeatStaleError(HeartbeatError):
    """The heartbeat was not rewritten within the stale threshold."""

    def __init__(self, age_seconds: float, threshold: float):
        super().__init__(f"Heartbeat is {age_seconds:.0f}s old (threshold {threshold:.0f}s)")
        self.age_seconds = age_seconds
        self.threshold = threshold


class HeartbeatMissingError(HeartbeatError):
    """No readable heartbeat file."""

    def __init__(self, path: str):
        super().__init__(f"Heartbeat file missing or unreadable: {path}")
        self.context.path = path


# =============================================================================
# ENVIRONMENT / STORAGE / LIFECYCLE
# =============================================================================


class EnvironmentNotReadyError(CheckpointError):
    """A required runtime condition is absent (e.g. backup drive detached)."""

    default_category = ErrorCategory.ENVIRONMENT
    default_retryable = True


class RegistryError(CheckpointError):
    """The project registry could not be read or written."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class DaemonLifecycleError(CheckpointError):
    """The platform scheduler rejected a lifecycle command."""

    default_category = ErrorCategory.LIFECYCLE
    default_retryable = True


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CheckpointError",
    "ConfigError",
    "ConfigMissingError",
    "DirectoryMissingError",
    "RetentionConfigError",
    "LockError",
    "LockBusyError",
    "LockStaleError",
    "ExecutionFailedError",
    "HeartbeatError",
    "HeartbeatStaleError",
    "HeartbeatMissingError",
    "EnvironmentNotReadyError",
    "RegistryError",
    "DaemonLifecycleError",
]
