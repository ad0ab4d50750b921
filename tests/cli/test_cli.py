"""Tests for the checkpoint CLI."""

from __future__ import annotations

import json
import shutil

import pytest
from typer.testing import CliRunner

from checkpoint import __version__
from checkpoint.cli import app
from checkpoint.daemon import NullLifecycle

cli = CliRunner()


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "cp-home"
    monkeypatch.setenv("CHECKPOINT_HOME", str(home))
    monkeypatch.setenv("CHECKPOINT_PIPELINE_COMMAND", '["true"]')
    monkeypatch.setenv("CHECKPOINT_NOTIFICATIONS", "false")
    monkeypatch.setattr("checkpoint.cli.utils.select_lifecycle", lambda: NullLifecycle())
    return home


def invoke(*args):
    return cli.invoke(app, [str(a) for a in args])


def as_json(result):
    return json.loads(result.stdout)


class TestRoot:
    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert result.stdout.startswith("checkpoint ")

    def test_help_lists_commands(self):
        result = invoke("--help")
        assert result.exit_code == 0
        for command in ("run", "watch", "sweep", "status", "projects", "retention", "locks"):
            assert command in result.stdout

    def test_package_version(self):
        assert __version__


class TestProjects:
    def test_add_and_list(self, home, project_dir):
        added = invoke("projects", "add", project_dir, "--json")
        assert added.exit_code == 0
        assert as_json(added)["name"] == "web"

        listed = invoke("projects", "list", "--json")
        assert [p["name"] for p in as_json(listed)] == ["web"]

    def test_add_missing_directory(self, home, tmp_path):
        result = invoke("projects", "add", tmp_path / "nope")
        assert result.exit_code == 2

    def test_disable_enable_remove(self, home, project_dir):
        invoke("projects", "add", project_dir)
        assert invoke("projects", "disable", "web").exit_code == 0
        assert as_json(invoke("projects", "list", "--enabled", "--json")) == []
        assert invoke("projects", "enable", "web").exit_code == 0
        assert invoke("projects", "remove", "web").exit_code == 0
        assert invoke("projects", "remove", "web").exit_code == 2

    def test_unknown_project_fails(self, home):
        assert invoke("projects", "disable", "ghost").exit_code == 1

    def test_cleanup_orphans(self, home, project_factory):
        gone = project_factory("gone")
        invoke("projects", "add", gone)
        shutil.rmtree(gone)
        result = invoke("projects", "cleanup", "--json")
        assert [p["name"] for p in as_json(result)] == ["gone"]


class TestRun:
    def test_run_registers_and_backs_up(self, home, project_dir):
        result = invoke("run", project_dir, "--json")
        assert result.exit_code == 0
        data = as_json(result)
        assert data["outcome"] == "backed_up"
        assert data["project"] == "web"

        heartbeat = json.loads((home / "daemon.heartbeat").read_text())
        assert heartbeat["status"] == "healthy"
        assert (home / "logs" / "run.log").exists()

    def test_second_run_skipped_by_interval(self, home, project_dir):
        invoke("run", project_dir)
        result = invoke("run", project_dir, "--json")
        assert result.exit_code == 0
        assert as_json(result)["skip_reason"] == "interval"
        assert as_json(invoke("run", project_dir, "--force", "--json"))["outcome"] == "backed_up"

    def test_failed_pipeline_exits_1(self, home, project_dir, monkeypatch):
        monkeypatch.setenv("CHECKPOINT_PIPELINE_COMMAND", '["false"]')
        result = invoke("run", project_dir, "--json")
        assert result.exit_code == 1
        assert as_json(result)["outcome"] == "failed"

    def test_missing_config_exits_2(self, home, project_dir):
        (project_dir / ".backup-config.sh").unlink()
        result = invoke("run", project_dir, "--json")
        assert result.exit_code == 2
        assert as_json(result)["skip_reason"] == "config_missing"

    def test_unregistered_name(self, home):
        assert invoke("run", "ghost").exit_code == 2

    def test_invalid_settings(self, home, monkeypatch, project_dir):
        monkeypatch.setenv("CHECKPOINT_STALE_THRESHOLD", "soon")
        assert invoke("run", project_dir).exit_code == 2


class TestSweep:
    def test_sweep_with_missing_project(self, home, project_factory):
        a = project_factory("a")
        b = project_factory("b")
        invoke("projects", "add", a)
        invoke("projects", "add", b)
        shutil.rmtree(b)

        result = invoke("sweep", "--json")
        assert result.exit_code == 0
        data = as_json(result)
        assert (data["backed_up"], data["skipped"], data["failed"]) == (1, 1, 0)
        assert data["status"] == "healthy"

    def test_sweep_failure_exits_1(self, home, project_dir, monkeypatch):
        invoke("projects", "add", project_dir)
        monkeypatch.setenv("CHECKPOINT_PIPELINE_COMMAND", '["false"]')
        result = invoke("sweep")
        assert result.exit_code == 1
        assert "error" in result.stdout

    def test_empty_sweep(self, home):
        result = invoke("sweep", "--json")
        assert result.exit_code == 0
        assert as_json(result)["total"] == 0


class TestStatus:
    def test_status_before_anything(self, home):
        result = invoke("status", "--json")
        assert result.exit_code == 0
        assert as_json(result) == {"heartbeat": None, "watchdog": None, "locks": []}

    def test_status_after_run(self, home, project_dir):
        invoke("run", project_dir)
        data = as_json(invoke("status", "--json"))
        assert data["heartbeat"]["status"] == "healthy"
        assert data["heartbeat"]["stale"] is False

    def test_locks_list_and_cleanup(self, home):
        (home / "locks").mkdir(parents=True)
        (home / "locks" / "web.lock").write_text("999999999\n")
        listed = as_json(invoke("locks", "list", "--json"))
        assert [lock["key"] for lock in listed] == ["web"]
        result = invoke("locks", "cleanup")
        assert "Removed 1 stale lock(s)" in result.stdout
        assert not (home / "locks" / "web.lock").exists()


class TestWatchdog:
    def test_check_without_daemons(self, home):
        result = invoke("watchdog", "check", "--json")
        assert result.exit_code == 0
        assert as_json(result)["state"] == "no_daemons"
        status = as_json(invoke("watchdog", "status", "--json"))
        assert status["status"] == "no_daemons"

    def test_status_before_first_run(self, home):
        result = invoke("watchdog", "status")
        assert result.exit_code == 0
        assert "has not run yet" in result.stdout


class TestRetention:
    @pytest.fixture
    def backed_up(self, home, project_dir):
        invoke("projects", "add", project_dir)
        archived = project_dir / "backups" / "archived"
        archived.mkdir(parents=True)
        (archived / "main.py.20200101_000000").write_text("old\n")
        return project_dir

    def test_stats(self, backed_up):
        result = invoke("retention", "stats", backed_up, "--json")
        assert result.exit_code == 0
        assert set(as_json(result)) == {"hourly", "daily", "weekly", "monthly"}

    def test_prune_preview_then_apply(self, backed_up):
        old = backed_up / "backups" / "archived" / "main.py.20200101_000000"
        preview = as_json(invoke("retention", "prune", backed_up, "--json"))
        assert preview["delete_count"] == 1
        assert "applied" not in preview
        assert old.exists()

        applied = as_json(invoke("retention", "prune", backed_up, "--apply", "--json"))
        assert applied["applied"]["deleted"] == 1
        assert not old.exists()

    def test_history(self, backed_up):
        result = invoke("retention", "history", "main.py", "--project", backed_up, "--json")
        labels = [row["label"] for row in as_json(result)]
        assert labels == ["CURRENT", "20200101_000000"]


class TestDaemon:
    def test_list_without_service_manager(self, home, monkeypatch):
        monkeypatch.setattr("checkpoint.cli.daemon.select_lifecycle", lambda: NullLifecycle())
        result = invoke("daemon", "list", "--json")
        assert result.exit_code == 0
        assert as_json(result) == []

    def test_install_without_service_manager_fails(self, home, monkeypatch):
        monkeypatch.setattr("checkpoint.cli.daemon.select_lifecycle", lambda: NullLifecycle())
        assert invoke("daemon", "install").exit_code == 1
