"""Crash-safe single-flight run locks.

Manifesto:
    Two backup runs for the same project must never overlap, and a crashed
    run must never leave a lock that needs manual cleanup. Locks are plain
    files so that watchers, sweeps and CLI runs (separate processes) can
    coordinate with nothing but the filesystem.

Tags:
    checkpoint, locking, concurrency, crash-safety, psutil

Doc-Types:
    api-reference, architecture-diagram


    Lock Lifecycle::

        acquire(key, mode)
          │
          ├─ create-exclusive <key>.lock ──────────────► ACQUIRED
          │     (temp file + os.link, never partial)
          │
          └─ exists → read record → owner live?
                │            │
                │ no         │ yes
                ▼            ├─ normal: poll until wait_seconds ──► BUSY(pid)
             break stale     └─ force: SIGTERM, poll grace period,
             (rename aside,            break unconditionally
              verify content)                 │
                │                             │
                └────────► create-exclusive ◄─┘ ──────────────────► RECLAIMED

        Live = PID exists, not a zombie, same start time, same host,
               and lock younger than the abandonment threshold.
"""

from __future__ import annotations

import os
import re
import socket
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from uuid import uuid4

from checkpoint.core.errors import LockBusyError, LockStaleError
from checkpoint.core.logging import get_logger
from checkpoint.core.process import (
    ProcessIdentity,
    is_process_alive,
    process_start_time,
    terminate_process,
    wait_for_exit,
)
from checkpoint.locking.models import (
    AcquireResult,
    AcquireStatus,
    LockLease,
    LockMode,
    LockRecord,
)

logger = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")

# Upper bound on preempt/reclaim rounds inside one acquire call.
_MAX_RECLAIM_ROUNDS = 5


def _is_foreign(record: LockRecord) -> bool:
    return bool(record.hostname) and record.hostname != socket.gethostname()


class RunLockManager:
    """File-based exclusive locks keyed by project id (or ``"sweep"``).

    Example:
        >>> manager = RunLockManager(settings.lock_dir)
        >>> with manager.hold(project.id):
        ...     pipeline.run(project)
        >>>
        >>> result = manager.acquire("sweep", LockMode.FORCE)
        >>> result.status
        <AcquireStatus.RECLAIMED: 'reclaimed'>
    """

    def __init__(
        self,
        lock_dir: Path,
        *,
        force_grace_seconds: float = 5.0,
        poll_interval: float = 0.1,
        abandon_after_seconds: float | None = None,
        identity: ProcessIdentity | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize lock manager.

        Args:
            lock_dir: Directory holding ``<key>.lock`` files (created lazily)
            force_grace_seconds: How long ``force`` waits for a preempted owner
            poll_interval: Step between liveness/lock polls
            abandon_after_seconds: Lock age after which even a live owner is
                treated as hung. None disables the age check.
            identity: Identity written into new locks (defaults to this process)
            clock: Wall clock used for lock ages
            sleep: Sleep function used while polling
        """
        self.lock_dir = Path(lock_dir)
        self.force_grace_seconds = force_grace_seconds
        self.poll_interval = poll_interval
        self.abandon_after_seconds = abandon_after_seconds
        self.identity = identity or ProcessIdentity.current()
        self._clock = clock
        self._sleep = sleep

    def lock_path(self, key: str) -> Path:
        return self.lock_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.lock"

    # === Acquire / release ===

    def acquire(
        self,
        key: str,
        mode: LockMode = LockMode.NORMAL,
        *,
        wait_seconds: float = 0.0,
    ) -> AcquireResult:
        """Acquire the lock for ``key``.

        Never blocks longer than ``wait_seconds`` (normal mode) or
        ``force_grace_seconds`` per preempted owner (force mode).

        Returns:
            AcquireResult with status ACQUIRED, RECLAIMED or BUSY
        """
        path = self.lock_path(key)
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + wait_seconds
        displaced: LockRecord | None = None
        reclaim_reason: str | None = None
        warnings: list[str] = []
        rounds = 0

        while True:
            record = self._new_record()
            if self._try_create(path, record):
                lease = LockLease(key=key, path=path, record=record)
                if reclaim_reason is not None:
                    logger.info(
                        "lock_reclaimed",
                        key=key,
                        previous_pid=displaced.pid if displaced else None,
                        reason=reclaim_reason,
                    )
                    return AcquireResult(
                        status=AcquireStatus.RECLAIMED,
                        key=key,
                        owner_pid=displaced.pid if displaced else None,
                        lease=lease,
                        previous=displaced,
                        reason=reclaim_reason,
                        warnings=warnings,
                    )
                logger.debug("lock_acquired", key=key)
                return AcquireResult(status=AcquireStatus.ACQUIRED, key=key, lease=lease)

            raw = self._read_raw(path)
            if raw is None:
                # Released between our create attempt and the read.
                continue
            text, mtime = raw
            existing = LockRecord.parse(text, mtime)
            reason = self.stale_reason(existing)

            if reason is None:
                if mode is LockMode.NORMAL:
                    if time.monotonic() >= deadline:
                        logger.info("lock_busy", key=key, owner_pid=existing.pid)
                        return AcquireResult(
                            status=AcquireStatus.BUSY,
                            key=key,
                            owner_pid=existing.pid,
                            reason="held",
                        )
                    self._sleep(self.poll_interval)
                    continue
                if rounds >= _MAX_RECLAIM_ROUNDS:
                    logger.warning("lock_force_gave_up", key=key, owner_pid=existing.pid)
                    return AcquireResult(
                        status=AcquireStatus.BUSY,
                        key=key,
                        owner_pid=existing.pid,
                        reason="contended",
                        warnings=warnings,
                    )
                if not self._preempt(key, existing):
                    warnings.append(
                        f"pid {existing.pid} still running after "
                        f"{self.force_grace_seconds:.1f}s grace period"
                    )
                reason = "preempted"
            else:
                stale = LockStaleError(key, existing.pid if existing else None, reason)
                logger.warning("lock_stale", **stale.to_dict())

            rounds += 1
            if self._break(path, text):
                displaced = existing
                reclaim_reason = reason
            elif rounds >= _MAX_RECLAIM_ROUNDS:
                current = self._read_record(path)
                return AcquireResult(
                    status=AcquireStatus.BUSY,
                    key=key,
                    owner_pid=current.pid if current else None,
                    reason="contended",
                    warnings=warnings,
                )

    def release(self, lease: LockLease) -> bool:
        """Remove the lock if it still carries this lease's token.

        Returns:
            True if released, False if it was already gone or taken over
        """
        if not lease.path.exists():
            logger.warning("lock_already_released", key=lease.key)
            return False
        if self._break(lease.path, lease.record.dumps()):
            logger.debug("lock_released", key=lease.key)
            return True
        logger.warning("lock_taken_over", key=lease.key)
        return False

    @contextmanager
    def hold(
        self,
        key: str,
        mode: LockMode = LockMode.NORMAL,
        *,
        wait_seconds: float = 0.0,
    ) -> Iterator[AcquireResult]:
        """Scoped acquisition; the lock is released on every exit path.

        Raises:
            LockBusyError: a live owner holds the lock
        """
        result = self.acquire(key, mode, wait_seconds=wait_seconds)
        if not result.acquired or result.lease is None:
            raise LockBusyError(key, result.owner_pid)
        try:
            yield result
        finally:
            self.release(result.lease)

    # === Inspection ===

    def inspect(self, key: str) -> LockRecord | None:
        """Return the current lock record for ``key`` (live or not)."""
        return self._read_record(self.lock_path(key))

    def holder(self, key: str) -> int | None:
        """PID of the live owner, or None."""
        record = self.inspect(key)
        if record is not None and self.stale_reason(record) is None:
            return record.pid
        return None

    def is_locked(self, key: str) -> bool:
        return self.holder(key) is not None

    def stale_reason(self, record: LockRecord | None) -> str | None:
        """Why ``record`` is not live, or None if it is."""
        if record is None:
            return "unreadable"
        foreign_host = _is_foreign(record)
        if not foreign_host and not is_process_alive(record.pid, record.start_time):
            if record.start_time is not None and process_start_time(record.pid) is not None:
                return "pid_reused"
            return "dead"
        if (
            self.abandon_after_seconds is not None
            and self._clock() - record.created_at > self.abandon_after_seconds
        ):
            return "abandoned"
        return None

    def list_locks(self) -> list[dict[str, Any]]:
        """List all lock files with owner and liveness."""
        if not self.lock_dir.is_dir():
            return []
        locks = []
        for path in sorted(self.lock_dir.glob("*.lock")):
            record = self._read_record(path)
            reason = self.stale_reason(record)
            locks.append(
                {
                    "key": path.stem,
                    "pid": record.pid if record else None,
                    "created_at": record.created_at if record else None,
                    "live": reason is None,
                    "stale_reason": reason,
                }
            )
        return locks

    # === Maintenance ===

    def cleanup_stale(self) -> int:
        """Remove every lock whose owner is not live.

        Returns:
            Number of locks removed
        """
        if not self.lock_dir.is_dir():
            return 0
        count = 0
        for path in sorted(self.lock_dir.glob("*.lock")):
            raw = self._read_raw(path)
            if raw is None:
                continue
            record = LockRecord.parse(*raw)
            reason = self.stale_reason(record)
            if reason is not None and self._break(path, raw[0]):
                logger.info("stale_lock_removed", key=path.stem, reason=reason)
                count += 1
        return count

    def remove_if_stale(self, key: str) -> bool:
        path = self.lock_path(key)
        raw = self._read_raw(path)
        if raw is None:
            return False
        if self.stale_reason(LockRecord.parse(*raw)) is None:
            return False
        return self._break(path, raw[0])

    # === Internals ===

    def _new_record(self) -> LockRecord:
        return LockRecord(
            pid=self.identity.pid,
            start_time=self.identity.start_time,
            created_at=self._clock(),
            token=uuid4().hex,
            hostname=self.identity.hostname,
        )

    def _try_create(self, path: Path, record: LockRecord) -> bool:
        """Create-exclusive: write a complete temp file, then hard-link it into place."""
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".new", dir=self.lock_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(record.dumps())
                handle.flush()
                os.fsync(handle.fileno())
            try:
                os.link(tmp_name, path)
            except FileExistsError:
                return False
            return True
        finally:
            Path(tmp_name).unlink(missing_ok=True)

    def _break(self, path: Path, expected_text: str) -> bool:
        """Remove ``path`` only if it still holds ``expected_text``.

        The file is renamed aside first so the content check and the removal
        see the same inode. If another process replaced the lock since we
        read it, the replacement is linked back.
        """
        tomb = path.with_name(f".{path.name}.{uuid4().hex}.stale")
        try:
            os.rename(path, tomb)
        except FileNotFoundError:
            return True
        try:
            try:
                actual = tomb.read_bytes().decode("utf-8", errors="replace")
            except OSError:
                actual = None
            if actual == expected_text:
                return True
            try:
                os.link(tomb, path)
            except FileExistsError:
                logger.warning("lock_restore_conflict", key=path.stem)
            return False
        finally:
            tomb.unlink(missing_ok=True)

    def _preempt(self, key: str, owner: LockRecord) -> bool:
        """SIGTERM the owner and wait up to the grace period.

        An owner on another host cannot be signalled or observed from here;
        the grace period is still honoured before its lock is reclaimed.

        Returns:
            True if the owner is confirmed gone
        """
        if _is_foreign(owner):
            logger.warning(
                "lock_preempting_remote", key=key, owner_pid=owner.pid, hostname=owner.hostname
            )
            self._sleep(self.force_grace_seconds)
            return False
        if owner.pid == self.identity.pid:
            return True
        logger.warning("lock_preempting", key=key, owner_pid=owner.pid)
        terminate_process(owner.pid)
        exited = wait_for_exit(
            lambda: is_process_alive(owner.pid, owner.start_time),
            timeout=self.force_grace_seconds,
            poll_interval=self.poll_interval,
            sleep=self._sleep,
        )
        if not exited:
            logger.warning(
                "lock_preempt_unconfirmed",
                key=key,
                owner_pid=owner.pid,
                grace_seconds=self.force_grace_seconds,
            )
        return exited

    def _read_raw(self, path: Path) -> tuple[str, float] | None:
        try:
            mtime = path.stat().st_mtime
            return path.read_bytes().decode("utf-8", errors="replace"), mtime
        except FileNotFoundError:
            return None

    def _read_record(self, path: Path) -> LockRecord | None:
        raw = self._read_raw(path)
        return LockRecord.parse(*raw) if raw else None
