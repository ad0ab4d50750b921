"""Atomic file writes for shared state.

Every file that more than one process reads (heartbeat, watchdog status,
registry, per-project state) is written through ``atomic_write_text``:
temp file in the same directory, fsync, ``os.replace``. A concurrent reader
sees either the old content or the new content, never a mix.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` atomically. Parent dirs are created lazily."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def atomic_write_json(path: Path, payload: Any) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=False) + "\n")


def read_json(path: Path) -> Any | None:
    """Read JSON from ``path``; ``None`` when missing or unparseable."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def read_timestamp(path: Path) -> int | None:
    """Read an integer epoch timestamp written by ``write_timestamp``."""
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except (FileNotFoundError, ValueError):
        return None


def write_timestamp(path: Path, value: float) -> None:
    atomic_write_text(path, f"{int(value)}\n")
