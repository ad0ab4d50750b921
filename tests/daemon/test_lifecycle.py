"""Tests for the daemon lifecycle backends, driven by a fake command runner."""

from __future__ import annotations

import plistlib
import subprocess

import pytest

from checkpoint.core.errors import DaemonLifecycleError
from checkpoint.daemon import (
    DaemonLifecycle,
    LaunchdLifecycle,
    NullLifecycle,
    ServiceSpec,
    ServiceState,
    SystemdUserLifecycle,
    select_lifecycle,
)


class FakeRunner:
    """Returns canned output keyed by the first few argv words."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.responses: dict[tuple[str, ...], tuple[int, str, str]] = {}

    def __call__(self, argv):
        argv = list(argv)
        self.calls.append(argv)
        for size in range(len(argv), 0, -1):
            response = self.responses.get(tuple(argv[:size]))
            if response is not None:
                code, out, err = response
                return subprocess.CompletedProcess(argv, code, out, err)
        return subprocess.CompletedProcess(argv, 0, "", "")


@pytest.fixture
def fake_runner():
    return FakeRunner()


WATCHDOG = ServiceSpec(
    name="checkpoint-watchdog",
    command=["/usr/bin/checkpoint", "watchdog", "run"],
    description="Checkpoint watchdog",
    environment={"CHECKPOINT_HOME": "/tmp/cp"},
)
SWEEP = ServiceSpec(
    name="checkpoint-sweep",
    command=["/usr/bin/checkpoint", "sweep"],
    interval_seconds=3600,
)


class TestSystemd:
    def test_install_long_running_service(self, tmp_path, fake_runner):
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        lifecycle.install(WATCHDOG)
        unit = (tmp_path / "checkpoint-watchdog.service").read_text()
        assert "ExecStart=/usr/bin/checkpoint watchdog run" in unit
        assert "Restart=on-failure" in unit
        assert "Environment=CHECKPOINT_HOME=/tmp/cp" in unit
        assert fake_runner.calls[-1] == [
            "systemctl", "--user", "enable", "--now", "checkpoint-watchdog.service"
        ]

    def test_install_periodic_service_adds_timer(self, tmp_path, fake_runner):
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        lifecycle.install(SWEEP)
        assert "Type=oneshot" in (tmp_path / "checkpoint-sweep.service").read_text()
        assert "OnUnitActiveSec=3600" in (tmp_path / "checkpoint-sweep.timer").read_text()
        assert fake_runner.calls[-1][-1] == "checkpoint-sweep.timer"

    def test_uninstall_removes_units(self, tmp_path, fake_runner):
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        lifecycle.install(SWEEP)
        lifecycle.uninstall("checkpoint-sweep")
        assert list(tmp_path.iterdir()) == []

    def test_restart_failure_raises(self, tmp_path, fake_runner):
        fake_runner.responses[("systemctl", "--user", "restart")] = (5, "", "Unit not found")
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        with pytest.raises(DaemonLifecycleError) as info:
            lifecycle.restart("checkpoint-web")
        assert "Unit not found" in str(info.value)
        assert info.value.context.exit_code == 5

    def test_status(self, tmp_path, fake_runner):
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        assert lifecycle.status("checkpoint-watchdog") is ServiceState.NOT_INSTALLED
        lifecycle.install(WATCHDOG)
        fake_runner.responses[("systemctl", "--user", "is-active")] = (0, "active\n", "")
        assert lifecycle.status("checkpoint-watchdog") is ServiceState.RUNNING
        fake_runner.responses[("systemctl", "--user", "is-active")] = (3, "failed\n", "")
        assert lifecycle.status("checkpoint-watchdog") is ServiceState.STOPPED

    def test_list_by_prefix(self, tmp_path, fake_runner):
        fake_runner.responses[("systemctl", "--user", "list-unit-files")] = (
            0,
            "checkpoint-web.service enabled enabled\n"
            "checkpoint-watchdog.service enabled enabled\n"
            "dbus.service static -\n"
            "checkpoint-sweep.timer enabled enabled\n",
            "",
        )
        lifecycle = SystemdUserLifecycle(tmp_path, runner=fake_runner)
        assert lifecycle.list("checkpoint") == ["checkpoint-watchdog", "checkpoint-web"]


class TestLaunchd:
    def test_install_writes_plist(self, tmp_path, fake_runner):
        lifecycle = LaunchdLifecycle(tmp_path, runner=fake_runner)
        lifecycle.install(SWEEP)
        with open(tmp_path / "checkpoint-sweep.plist", "rb") as handle:
            plist = plistlib.load(handle)
        assert plist["Label"] == "checkpoint-sweep"
        assert plist["StartInterval"] == 3600
        assert "KeepAlive" not in plist
        assert fake_runner.calls[-1][:3] == ["launchctl", "load", "-w"]

    def test_long_running_keeps_alive(self, tmp_path, fake_runner):
        LaunchdLifecycle(tmp_path, runner=fake_runner).install(WATCHDOG)
        with open(tmp_path / "checkpoint-watchdog.plist", "rb") as handle:
            plist = plistlib.load(handle)
        assert plist["KeepAlive"] is True
        assert plist["EnvironmentVariables"] == {"CHECKPOINT_HOME": "/tmp/cp"}

    def test_list_and_status(self, tmp_path, fake_runner):
        fake_runner.responses[("launchctl", "list")] = (
            0,
            "PID\tStatus\tLabel\n"
            "123\t0\tcom.example.checkpoint-web\n"
            "-\t0\tcheckpoint-sweep\n"
            "-\t0\tcom.apple.Finder\n",
            "",
        )
        fake_runner.responses[("launchctl", "list", "checkpoint-web")] = (0, '{ "PID" = 123; }', "")
        fake_runner.responses[("launchctl", "list", "missing")] = (113, "", "")
        lifecycle = LaunchdLifecycle(tmp_path, runner=fake_runner)
        assert lifecycle.list("checkpoint") == ["checkpoint-sweep", "com.example.checkpoint-web"]
        assert lifecycle.status("checkpoint-web") is ServiceState.RUNNING
        assert lifecycle.status("missing") is ServiceState.NOT_INSTALLED


class TestSelection:
    def test_null_lifecycle(self):
        lifecycle = NullLifecycle()
        assert lifecycle.list("checkpoint") == []
        assert lifecycle.status("x") is ServiceState.UNKNOWN
        with pytest.raises(DaemonLifecycleError):
            lifecycle.restart("x")

    def test_darwin_selects_launchd(self):
        assert isinstance(select_lifecycle("darwin"), LaunchdLifecycle)

    def test_no_systemctl_falls_back_to_null(self, monkeypatch):
        monkeypatch.setattr("checkpoint.daemon.lifecycle.shutil.which", lambda name: None)
        assert isinstance(select_lifecycle("linux"), NullLifecycle)

    def test_backends_satisfy_contract(self, tmp_path):
        for lifecycle in (SystemdUserLifecycle(tmp_path), LaunchdLifecycle(tmp_path), NullLifecycle()):
            assert isinstance(lifecycle, DaemonLifecycle)
