"""Project registry.

A single JSON document (``{"version": 1, "projects": [...]}``) listing every
project ever backed up, in registration order. Reads are lock-free (writes
are atomic renames); every read-modify-write holds the ``registry`` lock with
a bounded wait.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from checkpoint.core.errors import RegistryError
from checkpoint.core.fileio import atomic_write_json, read_json
from checkpoint.core.logging import get_logger
from checkpoint.locking import REGISTRY_LOCK_KEY, RunLockManager
from checkpoint.orchestrator.models import Project, ProjectConfig

logger = get_logger(__name__)

REGISTRY_VERSION = 1


class RegistryDocument(BaseModel):
    version: int = REGISTRY_VERSION
    projects: list[Project] = Field(default_factory=list)


class ProjectRegistry:
    """Read and mutate the project registry.

    Example:
        >>> registry = ProjectRegistry(settings.registry_file, locks)
        >>> project = registry.register("~/code/web")
        >>> registry.update_last_backup(project.id, time.time())
    """

    def __init__(
        self,
        path: Path,
        locks: RunLockManager,
        *,
        lock_wait: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = Path(path)
        self.locks = locks
        self.lock_wait = lock_wait
        self._clock = clock

    # === Reads ===

    def load(self) -> RegistryDocument:
        if not self.path.exists():
            return RegistryDocument()
        data = read_json(self.path)
        if data is None:
            raise RegistryError(f"Registry is not valid JSON: {self.path}").with_context(
                path=str(self.path)
            )
        try:
            return RegistryDocument.model_validate(data)
        except ValidationError as exc:
            raise RegistryError(
                f"Registry has an invalid structure: {self.path}", cause=exc
            ).with_context(path=str(self.path)) from exc

    def list_projects(self, *, enabled_only: bool = False) -> list[Project]:
        projects = self.load().projects
        if enabled_only:
            return [p for p in projects if p.enabled]
        return projects

    def get(self, ref: str | Path) -> Project | None:
        """Find a project by id, name or path."""
        return self._find(self.load(), ref)

    # === Mutations ===

    def register(
        self,
        path: str | Path,
        name: str | None = None,
        config: ProjectConfig | None = None,
    ) -> Project:
        """Register ``path``. Idempotent: an existing entry is returned (with
        its config replaced when ``config`` is given)."""
        candidate = Project.create(path, name, config, now=self._clock())
        with self._mutate() as document:
            for index, existing in enumerate(document.projects):
                if existing.path == candidate.path:
                    if config is not None:
                        existing = existing.model_copy(update={"config": config})
                        document.projects[index] = existing
                    return existing
            document.projects.append(candidate)
        logger.info("project_registered", project=candidate.name, path=str(candidate.path))
        return candidate

    def unregister(self, ref: str | Path) -> bool:
        with self._mutate() as document:
            project = self._find(document, ref)
            if project is None:
                return False
            document.projects = [p for p in document.projects if p.id != project.id]
        logger.info("project_unregistered", project=project.name)
        return True

    def set_enabled(self, ref: str | Path, enabled: bool) -> Project:
        with self._mutate() as document:
            project = self._find(document, ref)
            if project is None:
                raise RegistryError(f"Project not registered: {ref}")
            updated = project.model_copy(update={"enabled": enabled})
            self._replace(document, updated)
        return updated

    def update_last_backup(self, ref: str | Path, timestamp: float) -> None:
        with self._mutate() as document:
            project = self._find(document, ref)
            if project is None:
                logger.warning("last_backup_unknown_project", ref=str(ref))
                return
            self._replace(document, project.model_copy(update={"last_backup": int(timestamp)}))

    def cleanup_orphaned(self) -> list[Project]:
        """Remove entries whose directory no longer exists."""
        with self._mutate() as document:
            orphans = [p for p in document.projects if not p.path.is_dir()]
            if orphans:
                orphan_ids = {p.id for p in orphans}
                document.projects = [p for p in document.projects if p.id not in orphan_ids]
        for project in orphans:
            logger.info("orphan_removed", project=project.name, path=str(project.path))
        return orphans

    # === Internals ===

    @contextmanager
    def _mutate(self) -> Iterator[RegistryDocument]:
        with self.locks.hold(REGISTRY_LOCK_KEY, wait_seconds=self.lock_wait):
            document = self.load()
            yield document
            atomic_write_json(self.path, document.model_dump(mode="json"))

    @staticmethod
    def _find(document: RegistryDocument, ref: str | Path) -> Project | None:
        text = str(ref)
        resolved = Path(text).expanduser().resolve(strict=False)
        for project in document.projects:
            if project.id == text or project.path == resolved:
                return project
        for project in document.projects:
            if project.name == text:
                return project
        return None

    @staticmethod
    def _replace(document: RegistryDocument, updated: Project) -> None:
        document.projects = [updated if p.id == updated.id else p for p in document.projects]
