"""
Deterministic hashing for stable project identity.

A project is identified by its resolved directory plus its display name, so
the same checkout always maps to the same lock key and state directory no
matter which process (watcher, sweep, CLI) computes it.

Examples:
    >>> project_id("/home/me/web", "web") == project_id("/home/me/web", "web")
    True
    >>> len(project_id("/home/me/web", "web"))
    12

Tags:
    hashing, identity, checkpoint
"""

import hashlib
from pathlib import Path
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Joins string representations with '|' and takes the SHA-256 hex digest.
    Order-dependent: ``compute_hash("a", "b") != compute_hash("b", "a")``.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def project_id(path: str | Path, name: str, length: int = 12) -> str:
    """Stable project id derived from the resolved path and name."""
    resolved = Path(path).expanduser().resolve(strict=False)
    return compute_hash(str(resolved), name, length=length)
