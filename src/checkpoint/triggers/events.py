"""Filesystem change-event sources.

One ``EventSource`` interface, two backends, chosen once at startup:

    native   watchdog ``Observer`` (inotify / FSEvents / kqueue / ReadDirectoryChanges)
    poll     watchdog ``PollingObserver`` scanning every ``poll_interval`` seconds

``auto`` tries the native backend and falls back to polling when it cannot
start (for example when the inotify watch limit is exhausted). Downstream
code only ever sees ``EventSource.start(callback)`` / ``stop()``.

Path exclusions are applied here, before anything reaches the coordinator.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from checkpoint.core.logging import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[str], None]

DEFAULT_EXCLUDES: tuple[str, ...] = (
    r"(^|/)\.git(/|$)",
    r"(^|/)\.hg(/|$)",
    r"(^|/)\.svn(/|$)",
    r"(^|/)node_modules(/|$)",
    r"(^|/)vendor/",
    r"(^|/)\.venv(/|$)",
    r"(^|/)venv/",
    r"(^|/)__pycache__(/|$)",
    r"(^|/)bower_components(/|$)",
    r"(^|/)dist/",
    r"(^|/)build/",
    r"(^|/)\.next/",
    r"(^|/)\.nuxt/",
    r"(^|/)\.parcel-cache(/|$)",
    r"(^|/)coverage/",
    r"(^|/)\.idea(/|$)",
    r"\.swp$",
    r"\.swo$",
    r"(^|/)4913$",
    r"(^|/)\.#",
    r"(^|/)\.DS_Store$",
    r"(^|/)backups/",
    r"(^|/)\.cache(/|$)",
    r"(^|/)\.planning/",
    r"(^|/)\.claudecode-backups(/|$)",
    r"(^|/)\.checkpoint(/|$)",
    r"(^|/)\.terraform(/|$)",
    r"\.pyc$",
)

_RELEVANT_EVENTS = frozenset({"created", "modified", "deleted", "moved"})


class ExcludeFilter:
    """Regex exclusions matched against root-relative POSIX paths."""

    def __init__(self, root: Path, patterns: Iterable[str] = DEFAULT_EXCLUDES) -> None:
        self.root = Path(root)
        self.patterns = [re.compile(p) for p in patterns]

    def relative(self, path: str) -> str:
        try:
            return Path(path).relative_to(self.root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    def excluded(self, path: str) -> bool:
        rel = self.relative(path)
        return any(p.search(rel) for p in self.patterns)


class EventSource(Protocol):
    backend: str

    def start(self, callback: ChangeCallback) -> None: ...

    def stop(self) -> None: ...


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, excludes: ExcludeFilter, callback: ChangeCallback) -> None:
        super().__init__()
        self.excludes = excludes
        self.callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _RELEVANT_EVENTS:
            return
        if event.is_directory and event.event_type == "modified":
            return
        paths = [str(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(str(dest))
        for path in paths:
            if not self.excludes.excluded(path):
                self.callback(path)
                return


class WatchdogEventSource:
    """Recursive watch over ``root`` backed by a watchdog observer."""

    def __init__(
        self,
        root: Path,
        observer: BaseObserver,
        backend: str,
        *,
        excludes: ExcludeFilter | None = None,
    ) -> None:
        self.root = Path(root)
        self.backend = backend
        self.excludes = excludes or ExcludeFilter(self.root)
        self._observer = observer

    def start(self, callback: ChangeCallback) -> None:
        self._observer.schedule(
            _ChangeHandler(self.excludes, callback), str(self.root), recursive=True
        )
        self._observer.start()
        logger.info("event_source_started", backend=self.backend, root=str(self.root))

    def stop(self) -> None:
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5.0)
        logger.info("event_source_stopped", backend=self.backend)


def build_excludes(root: Path, extra: Iterable[str] = (), backup_root: Path | None = None) -> ExcludeFilter:
    patterns = list(DEFAULT_EXCLUDES) + list(extra)
    if backup_root is not None:
        backup, project = Path(backup_root).resolve(), Path(root).resolve()
        if backup.is_relative_to(project) and backup != project:
            rel = backup.relative_to(project).as_posix()
            patterns.append(rf"^{re.escape(rel)}(/|$)")
    return ExcludeFilter(root, patterns)


def start_event_source(
    root: Path,
    callback: ChangeCallback,
    *,
    backend: str = "auto",
    poll_interval: float = 30.0,
    excludes: ExcludeFilter | None = None,
) -> EventSource:
    """Create and start the change-event source for ``root``.

    Args:
        backend: ``native``, ``poll`` or ``auto`` (native, falling back to poll)
    """
    if backend not in ("auto", "native", "poll"):
        raise ValueError(f"Unknown event backend: {backend!r}")

    if backend in ("auto", "native"):
        source = WatchdogEventSource(root, Observer(), "native", excludes=excludes)
        try:
            source.start(callback)
            return source
        except OSError as exc:
            if backend == "native":
                raise
            logger.warning("native_events_unavailable", error=str(exc), fallback="poll")

    source = WatchdogEventSource(
        root, PollingObserver(timeout=poll_interval), "poll", excludes=excludes
    )
    source.start(callback)
    return source
