"""Tests for atomic state files, hashing and process identity."""

import os
import subprocess
import sys

from checkpoint.core.fileio import (
    atomic_write_json,
    atomic_write_text,
    read_json,
    read_timestamp,
    write_timestamp,
)
from checkpoint.core.hashing import compute_hash, project_id
from checkpoint.core.process import (
    ProcessIdentity,
    is_process_alive,
    process_start_time,
    wait_for_exit,
)


class TestAtomicWrites:
    def test_creates_parent_dirs(self, tmp_path):
        target = tmp_path / "a" / "b" / "state.txt"
        atomic_write_text(target, "hello")
        assert target.read_text() == "hello"

    def test_replaces_content_and_leaves_no_temp_files(self, tmp_path):
        target = tmp_path / "state.json"
        atomic_write_json(target, {"v": 1})
        atomic_write_json(target, {"v": 2})
        assert read_json(target) == {"v": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_read_json_missing_or_corrupt(self, tmp_path):
        assert read_json(tmp_path / "missing.json") is None
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert read_json(bad) is None

    def test_timestamps(self, tmp_path):
        target = tmp_path / "last-backup-time"
        assert read_timestamp(target) is None
        write_timestamp(target, 1735200000.9)
        assert target.read_text() == "1735200000\n"
        assert read_timestamp(target) == 1735200000

    def test_garbage_timestamp_reads_as_none(self, tmp_path):
        target = tmp_path / "ts"
        target.write_text("yesterday")
        assert read_timestamp(target) is None


class TestHashing:
    def test_compute_hash_is_order_dependent(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")
        assert len(compute_hash("a")) == 32

    def test_project_id_is_stable_across_spellings(self, tmp_path):
        (tmp_path / "web").mkdir()
        direct = project_id(tmp_path / "web", "web")
        dotted = project_id(f"{tmp_path}/./web", "web")
        assert direct == dotted
        assert len(direct) == 12
        assert project_id(tmp_path / "web", "other") != direct


class TestProcessIdentity:
    def test_current_process_is_alive(self):
        me = ProcessIdentity.current()
        assert me.pid == os.getpid()
        assert me.start_time is not None
        assert is_process_alive(me.pid, me.start_time)

    def test_start_time_mismatch_means_not_alive(self):
        me = ProcessIdentity.current()
        assert not is_process_alive(me.pid, me.start_time - 3600)

    def test_exited_process_is_not_alive(self):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()
        assert not is_process_alive(proc.pid)
        assert process_start_time(proc.pid) is None

    def test_invalid_pid(self):
        assert not is_process_alive(0)
        assert not is_process_alive(-5)


class TestWaitForExit:
    def test_returns_true_once_dead(self):
        states = iter([True, True, False])
        sleeps = []
        assert wait_for_exit(lambda: next(states), timeout=5, sleep=sleeps.append)
        assert len(sleeps) == 2

    def test_times_out(self):
        now = [0.0]

        def sleep(seconds):
            now[0] += seconds

        assert not wait_for_exit(
            lambda: True, timeout=1.0, poll_interval=0.25, sleep=sleep, clock=lambda: now[0]
        )
        assert now[0] == 1.0
