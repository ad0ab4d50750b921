"""Daemon lifecycle over the platform scheduler.

One contract, ``install / uninstall / restart / status / list(prefix)``,
with a backend chosen once per process by ``select_lifecycle()``. The
watchdog only ever talks to this contract, never to systemctl or launchctl.

Backends:
    SystemdUserLifecycle   ``systemctl --user`` units in ~/.config/systemd/user
    LaunchdLifecycle       LaunchAgents plists driven by ``launchctl``
    NullLifecycle          No supported scheduler; lists nothing
"""

from __future__ import annotations

import os
import plistlib
import shutil
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable

from checkpoint.core.errors import DaemonLifecycleError
from checkpoint.core.logging import get_logger

logger = get_logger(__name__)

CommandRunner = Callable[[Sequence[str]], subprocess.CompletedProcess]


def _run(argv: Sequence[str]) -> subprocess.CompletedProcess:
    return subprocess.run(list(argv), capture_output=True, text=True, check=False)


class ServiceState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    NOT_INSTALLED = "not_installed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceSpec:
    """What to register: a long-running command, or a periodic one."""

    name: str
    command: list[str]
    description: str = ""
    interval_seconds: int | None = None
    working_directory: Path | None = None
    environment: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class DaemonLifecycle(Protocol):
    """Platform scheduler contract."""

    name: str

    def install(self, spec: ServiceSpec) -> None: ...

    def uninstall(self, name: str) -> None: ...

    def restart(self, name: str) -> None: ...

    def status(self, name: str) -> ServiceState: ...

    def list(self, prefix: str) -> list[str]: ...


class SystemdUserLifecycle:
    """systemd user units. Periodic specs get a companion ``.timer`` unit."""

    name = "systemd"

    def __init__(self, unit_dir: Path | None = None, runner: CommandRunner = _run) -> None:
        self.unit_dir = unit_dir or Path.home() / ".config" / "systemd" / "user"
        self._runner = runner

    def _systemctl(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        result = self._runner(["systemctl", "--user", *args])
        if check and result.returncode != 0:
            raise DaemonLifecycleError(
                f"systemctl --user {' '.join(args)} failed: {result.stderr.strip()}"
            ).with_context(exit_code=result.returncode)
        return result

    def install(self, spec: ServiceSpec) -> None:
        self.unit_dir.mkdir(parents=True, exist_ok=True)
        service = [
            "[Unit]",
            f"Description={spec.description or spec.name}",
            "",
            "[Service]",
            f"ExecStart={' '.join(spec.command)}",
        ]
        if spec.working_directory:
            service.append(f"WorkingDirectory={spec.working_directory}")
        for key, value in sorted(spec.environment.items()):
            service.append(f"Environment={key}={value}")
        if spec.interval_seconds:
            service.append("Type=oneshot")
        else:
            service += ["Restart=on-failure", "RestartSec=10", "", "[Install]", "WantedBy=default.target"]
        (self.unit_dir / f"{spec.name}.service").write_text("\n".join(service) + "\n")

        unit = f"{spec.name}.service"
        if spec.interval_seconds:
            timer = [
                "[Unit]",
                f"Description={spec.description or spec.name} timer",
                "",
                "[Timer]",
                f"OnBootSec={spec.interval_seconds}",
                f"OnUnitActiveSec={spec.interval_seconds}",
                "",
                "[Install]",
                "WantedBy=timers.target",
            ]
            (self.unit_dir / f"{spec.name}.timer").write_text("\n".join(timer) + "\n")
            unit = f"{spec.name}.timer"

        self._systemctl("daemon-reload")
        self._systemctl("enable", "--now", unit)
        logger.info("daemon_installed", backend=self.name, service=spec.name)

    def uninstall(self, name: str) -> None:
        for suffix in (".timer", ".service"):
            path = self.unit_dir / f"{name}{suffix}"
            if path.exists():
                self._systemctl("disable", "--now", f"{name}{suffix}", check=False)
                path.unlink()
        self._systemctl("daemon-reload", check=False)
        logger.info("daemon_uninstalled", backend=self.name, service=name)

    def restart(self, name: str) -> None:
        self._systemctl("restart", f"{name}.service")

    def status(self, name: str) -> ServiceState:
        if not (self.unit_dir / f"{name}.service").exists():
            return ServiceState.NOT_INSTALLED
        state = self._systemctl("is-active", f"{name}.service", check=False).stdout.strip()
        if state in ("active", "activating"):
            return ServiceState.RUNNING
        if state in ("inactive", "failed", "deactivating"):
            return ServiceState.STOPPED
        return ServiceState.UNKNOWN

    def list(self, prefix: str) -> list[str]:
        result = self._systemctl(
            "list-unit-files", "--type=service", "--no-legend", "--plain", check=False
        )
        names = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if not parts or not parts[0].endswith(".service"):
                continue
            unit = parts[0].removesuffix(".service")
            if unit.startswith(prefix):
                names.append(unit)
        return sorted(names)


class LaunchdLifecycle:
    """macOS LaunchAgents. The service name is used as the launchd label."""

    name = "launchd"

    def __init__(self, agent_dir: Path | None = None, runner: CommandRunner = _run) -> None:
        self.agent_dir = agent_dir or Path.home() / "Library" / "LaunchAgents"
        self._runner = runner

    def _launchctl(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        result = self._runner(["launchctl", *args])
        if check and result.returncode != 0:
            raise DaemonLifecycleError(
                f"launchctl {' '.join(args)} failed: {result.stderr.strip()}"
            ).with_context(exit_code=result.returncode)
        return result

    def _plist_path(self, name: str) -> Path:
        return self.agent_dir / f"{name}.plist"

    def install(self, spec: ServiceSpec) -> None:
        self.agent_dir.mkdir(parents=True, exist_ok=True)
        plist: dict = {
            "Label": spec.name,
            "ProgramArguments": list(spec.command),
            "RunAtLoad": True,
        }
        if spec.interval_seconds:
            plist["StartInterval"] = spec.interval_seconds
        else:
            plist["KeepAlive"] = True
        if spec.working_directory:
            plist["WorkingDirectory"] = str(spec.working_directory)
        if spec.environment:
            plist["EnvironmentVariables"] = dict(spec.environment)
        path = self._plist_path(spec.name)
        with open(path, "wb") as handle:
            plistlib.dump(plist, handle)
        self._launchctl("load", "-w", str(path))
        logger.info("daemon_installed", backend=self.name, service=spec.name)

    def uninstall(self, name: str) -> None:
        path = self._plist_path(name)
        if path.exists():
            self._launchctl("unload", "-w", str(path), check=False)
            path.unlink()
        logger.info("daemon_uninstalled", backend=self.name, service=name)

    def restart(self, name: str) -> None:
        self._launchctl("kickstart", "-k", f"gui/{os.getuid()}/{name}")

    def status(self, name: str) -> ServiceState:
        result = self._launchctl("list", name, check=False)
        if result.returncode != 0:
            return ServiceState.NOT_INSTALLED
        if '"PID" =' in result.stdout:
            return ServiceState.RUNNING
        return ServiceState.STOPPED

    def list(self, prefix: str) -> list[str]:
        result = self._launchctl("list", check=False)
        labels = []
        for line in result.stdout.splitlines()[1:]:
            parts = line.split()
            if len(parts) < 3:
                continue
            label = parts[2]
            if label.startswith(prefix) or f".{prefix}" in label:
                labels.append(label)
        return sorted(labels)


class NullLifecycle:
    """No supported scheduler on this host."""

    name = "none"

    def install(self, spec: ServiceSpec) -> None:
        raise DaemonLifecycleError("No supported service manager (systemd or launchd) found")

    def uninstall(self, name: str) -> None:
        raise DaemonLifecycleError("No supported service manager (systemd or launchd) found")

    def restart(self, name: str) -> None:
        raise DaemonLifecycleError("No supported service manager (systemd or launchd) found")

    def status(self, name: str) -> ServiceState:
        return ServiceState.UNKNOWN

    def list(self, prefix: str) -> list[str]:
        return []


def select_lifecycle(platform: str | None = None) -> DaemonLifecycle:
    """Pick the scheduler backend for this host. Called once per process."""
    platform = platform or sys.platform
    if platform == "darwin":
        return LaunchdLifecycle()
    if shutil.which("systemctl"):
        return SystemdUserLifecycle()
    logger.warning("no_service_manager", platform=platform)
    return NullLifecycle()
