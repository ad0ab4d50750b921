"""Version history for a single file across generations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from checkpoint.retention.engine import Generation, SnapshotEntry

CURRENT_LABEL = "CURRENT"


@dataclass(frozen=True)
class VersionEntry:
    """One row of a file's history, newest first."""

    label: str
    timestamp: datetime
    size: int
    location: Path | None
    generation: Generation

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "timestamp": self.timestamp.isoformat(),
            "size": self.size,
            "location": str(self.location) if self.location else None,
            "generation": self.generation.value,
        }


def _label(entry: SnapshotEntry) -> str:
    if entry.generation is Generation.MIRROR:
        return "mirror"
    return entry.timestamp.strftime("%Y%m%d_%H%M%S")


def version_history(
    relative_path: str,
    entries: Iterable[SnapshotEntry],
    *,
    working_copy: Path | None = None,
) -> list[VersionEntry]:
    """Merge mirror and archived versions of ``relative_path``.

    Versions are sorted newest first. Two captures with the same
    second-resolution timestamp and size are the same version; the mirror
    copy wins over an archived duplicate. When ``working_copy`` exists, a
    synthetic CURRENT row for the live file is prepended.
    """
    candidates = [e for e in entries if e.relative_path == relative_path]
    # mirror before archived so the mirror survives deduplication
    candidates.sort(key=lambda e: (e.generation is not Generation.MIRROR, str(e.location or "")))

    seen: set[tuple[datetime, int]] = set()
    versions: list[VersionEntry] = []
    for entry in candidates:
        key = (entry.timestamp.replace(microsecond=0), entry.size)
        if key in seen:
            continue
        seen.add(key)
        versions.append(
            VersionEntry(
                label=_label(entry),
                timestamp=entry.timestamp,
                size=entry.size,
                location=entry.location,
                generation=entry.generation,
            )
        )

    versions.sort(
        key=lambda v: (v.timestamp, v.generation is Generation.MIRROR),
        reverse=True,
    )

    if working_copy is not None and working_copy.is_file():
        stat = working_copy.stat()
        versions.insert(
            0,
            VersionEntry(
                label=CURRENT_LABEL,
                timestamp=datetime.fromtimestamp(stat.st_mtime).astimezone(),
                size=stat.st_size,
                location=working_copy,
                generation=Generation.CURRENT,
            ),
        )
    return versions
