"""Per-project and per-sweep run locks."""

from checkpoint.locking.lock_manager import RunLockManager
from checkpoint.locking.models import (
    AcquireResult,
    AcquireStatus,
    LockLease,
    LockMode,
    LockRecord,
)

SWEEP_LOCK_KEY = "sweep"
REGISTRY_LOCK_KEY = "registry"

__all__ = [
    "AcquireResult",
    "AcquireStatus",
    "LockLease",
    "LockMode",
    "LockRecord",
    "RunLockManager",
    "SWEEP_LOCK_KEY",
    "REGISTRY_LOCK_KEY",
]
