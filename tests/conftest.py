"""
Shared pytest fixtures for checkpoint tests.

This module provides:
- Isolated settings rooted in a temporary home directory
- Manual clock, timer and sleep doubles for deterministic timing tests
- Recording doubles for the pipeline, notifier and daemon lifecycle
- A ready-to-back-up project directory

Usage:
    def test_something(settings, project_dir, fake_pipeline):
        ...
"""

import sys
from pathlib import Path
from typing import Callable

import pytest
import structlog

# Ensure checkpoint package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from checkpoint.core.errors import DaemonLifecycleError
from checkpoint.core.settings import CheckpointSettings
from checkpoint.daemon.lifecycle import ServiceSpec, ServiceState
from checkpoint.heartbeat.notify import Severity
from checkpoint.heartbeat.publisher import HeartbeatPublisher
from checkpoint.locking import RunLockManager
from checkpoint.orchestrator.models import Project
from checkpoint.orchestrator.pipeline import PipelineResult
from checkpoint.orchestrator.registry import ProjectRegistry
from checkpoint.orchestrator.runner import ProjectRunner

CONFIG_MARKER = ".backup-config.sh"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep one test's configure_logging() from leaking into later tests."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Time doubles
# =============================================================================


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerFactory:
    """Records every timer; ``fire_pending`` runs the live ones."""

    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_pending(self) -> int:
        live = self.pending
        for timer in live:
            timer.cancelled = True
            timer.callback()
        return len(live)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


# =============================================================================
# Collaborator doubles
# =============================================================================


class FakePipeline:
    """Pipeline returning queued results (default: exit 0)."""

    def __init__(self, results: list[PipelineResult] | None = None):
        self.results = list(results or [])
        self.calls: list[tuple[str, bool]] = []
        self.during: Callable[[Project], None] | None = None

    def run(self, project: Project, *, force: bool = False) -> PipelineResult:
        self.calls.append((project.name, force))
        if self.during is not None:
            self.during(project)
        if self.results:
            return self.results.pop(0)
        return PipelineResult(exit_code=0)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, Severity]] = []

    def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> bool:
        self.sent.append((title, message, severity))
        return True


class FakeLifecycle:
    """In-memory service manager."""

    def __init__(self, services: list[str] | None = None, failing: set[str] | None = None):
        self.services = list(services or [])
        self.failing = failing or set()
        self.restarts: list[str] = []
        self.installed: list[ServiceSpec] = []

    def install(self, spec: ServiceSpec) -> None:
        self.installed.append(spec)
        self.services.append(spec.name)

    def uninstall(self, name: str) -> None:
        self.services.remove(name)

    def restart(self, name: str) -> None:
        if name in self.failing:
            raise DaemonLifecycleError(f"cannot restart {name}")
        self.restarts.append(name)

    def status(self, name: str) -> ServiceState:
        return ServiceState.RUNNING if name in self.services else ServiceState.NOT_INSTALLED

    def list(self, prefix: str) -> list[str]:
        return [s for s in self.services if s.startswith(prefix)]


@pytest.fixture
def fake_pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Components wired on a temporary home
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> CheckpointSettings:
    return CheckpointSettings(home=tmp_path / "home", notifications=False)


@pytest.fixture
def locks(settings: CheckpointSettings) -> RunLockManager:
    return RunLockManager(settings.lock_dir, force_grace_seconds=2.0, poll_interval=0.01)


@pytest.fixture
def publisher(settings: CheckpointSettings, clock: ManualClock) -> HeartbeatPublisher:
    return HeartbeatPublisher(settings.heartbeat_file, clock=clock)


@pytest.fixture
def registry(settings: CheckpointSettings, locks: RunLockManager, clock: ManualClock) -> ProjectRegistry:
    return ProjectRegistry(settings.registry_file, locks, lock_wait=1.0, clock=clock)


@pytest.fixture
def runner(
    settings: CheckpointSettings,
    locks: RunLockManager,
    fake_pipeline: FakePipeline,
    publisher: HeartbeatPublisher,
    registry: ProjectRegistry,
    clock: ManualClock,
) -> ProjectRunner:
    return ProjectRunner(
        locks=locks,
        pipeline=fake_pipeline,
        publisher=publisher,
        state_root=settings.state_dir,
        config_marker=CONFIG_MARKER,
        registry=registry,
        clock=clock,
    )


def make_project_dir(root: Path, name: str) -> Path:
    """A project directory with the backup config marker in place."""
    path = root / name
    path.mkdir(parents=True)
    (path / CONFIG_MARKER).write_text("# backup config\n")
    (path / "main.py").write_text("print('hello')\n")
    return path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    return make_project_dir(tmp_path / "projects", "web")


@pytest.fixture
def project(project_dir: Path, clock: ManualClock) -> Project:
    return Project.create(project_dir, now=clock())


@pytest.fixture
def project_factory(tmp_path: Path) -> Callable[[str], Path]:
    """Create additional configured project directories by name."""
    return lambda name: make_project_dir(tmp_path / "projects", name)


@pytest.fixture
def lifecycle() -> FakeLifecycle:
    return FakeLifecycle(["checkpoint-web", "checkpoint-watchdog", "claudecode-sweep"])
