"""Tests for change-event exclusion and the watchdog-backed event source."""

from __future__ import annotations

import threading

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from checkpoint.triggers import ExcludeFilter, build_excludes, start_event_source
from checkpoint.triggers.events import _ChangeHandler


class TestExcludeFilter:
    @pytest.mark.parametrize(
        "rel",
        [
            ".git/index",
            "node_modules/react/index.js",
            "src/__pycache__/app.cpython-312.pyc",
            "backups/files/main.py",
            ".main.py.swp",
            "4913",
            "web/.DS_Store",
            ".venv/lib/site.py",
        ],
    )
    def test_excluded(self, tmp_path, rel):
        assert ExcludeFilter(tmp_path).excluded(str(tmp_path / rel))

    @pytest.mark.parametrize("rel", ["main.py", "src/app/models.py", "docs/gitignore.md"])
    def test_included(self, tmp_path, rel):
        assert not ExcludeFilter(tmp_path).excluded(str(tmp_path / rel))

    def test_extra_patterns_and_backup_root(self, tmp_path):
        excludes = build_excludes(tmp_path, [r"\.log$"], backup_root=tmp_path / "snapshots")
        assert excludes.excluded(str(tmp_path / "server.log"))
        assert excludes.excluded(str(tmp_path / "snapshots" / "files" / "a.py"))
        assert not excludes.excluded(str(tmp_path / "snapshots-notes.md"))

    def test_backup_root_outside_project_adds_nothing(self, tmp_path):
        plain = build_excludes(tmp_path / "p")
        outside = build_excludes(tmp_path / "p", backup_root=tmp_path / "elsewhere")
        assert len(outside.patterns) == len(plain.patterns)


class TestChangeHandler:
    def test_relevant_events_reach_callback(self, tmp_path):
        seen = []
        handler = _ChangeHandler(ExcludeFilter(tmp_path), seen.append)
        handler.on_any_event(FileModifiedEvent(str(tmp_path / "main.py")))
        handler.on_any_event(FileCreatedEvent(str(tmp_path / "new.py")))
        assert seen == [str(tmp_path / "main.py"), str(tmp_path / "new.py")]

    def test_directory_modified_and_excluded_paths_are_dropped(self, tmp_path):
        seen = []
        handler = _ChangeHandler(ExcludeFilter(tmp_path), seen.append)
        handler.on_any_event(DirModifiedEvent(str(tmp_path / "src")))
        handler.on_any_event(FileModifiedEvent(str(tmp_path / ".git" / "HEAD")))
        assert seen == []

    def test_move_into_project_uses_destination(self, tmp_path):
        seen = []
        handler = _ChangeHandler(ExcludeFilter(tmp_path), seen.append)
        handler.on_any_event(
            FileMovedEvent(str(tmp_path / ".main.py.swp"), str(tmp_path / "main.py"))
        )
        assert seen == [str(tmp_path / "main.py")]


@pytest.mark.slow
class TestPollingSource:
    def test_poll_backend_reports_changes(self, tmp_path):
        changed = threading.Event()
        paths = []

        def on_change(path):
            paths.append(path)
            changed.set()

        source = start_event_source(tmp_path, on_change, backend="poll", poll_interval=0.1)
        try:
            assert source.backend == "poll"
            (tmp_path / "main.py").write_text("x = 1\n")
            assert changed.wait(timeout=5.0)
        finally:
            source.stop()
        assert any(p.endswith("main.py") for p in paths)

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ValueError):
            start_event_source(tmp_path, lambda p: None, backend="fanotify")
