"""Tests for heartbeat records and the atomic publisher."""

import json
import threading

from checkpoint.heartbeat import (
    HeartbeatPublisher,
    HeartbeatRecord,
    HeartbeatStatus,
    SweepProgress,
    read_heartbeat,
)


class TestPublish:
    def test_flat_record_on_disk(self, tmp_path, clock):
        path = tmp_path / "daemon.heartbeat"
        publisher = HeartbeatPublisher(path, clock=clock, pid=321)
        publisher.publish(
            HeartbeatStatus.HEALTHY, project="web", last_backup=1699999000, last_backup_files=412
        )
        data = json.loads(path.read_text())
        assert data == {
            "timestamp": int(clock()),
            "status": "healthy",
            "project": "web",
            "last_backup": 1699999000,
            "last_backup_files": 412,
            "error": None,
            "pid": 321,
        }

    def test_progress_is_flattened_and_restored(self, tmp_path, clock):
        path = tmp_path / "daemon.heartbeat"
        publisher = HeartbeatPublisher(path, clock=clock)
        progress = SweepProgress(index=2, total=5, current_project="api", backed_up=1, skipped=0)
        publisher.publish(HeartbeatStatus.SYNCING, project="api", progress=progress)

        data = json.loads(path.read_text())
        assert data["syncing_project_index"] == 2
        assert data["syncing_total_projects"] == 5
        assert data["syncing_current_project"] == "api"
        assert data["syncing_backed_up"] == 1

        record = publisher.read()
        assert record.progress == progress
        assert record.known_status is HeartbeatStatus.SYNCING

    def test_latest_write_wins(self, tmp_path, clock):
        publisher = HeartbeatPublisher(tmp_path / "hb", clock=clock)
        publisher.publish(HeartbeatStatus.SYNCING, project="web")
        clock.advance(30)
        publisher.publish(HeartbeatStatus.ERROR, project="web", error="exit 2")
        record = publisher.read()
        assert record.status == "error"
        assert record.error == "exit 2"
        assert record.timestamp == int(clock())
        assert sorted(p.name for p in tmp_path.iterdir()) == ["hb"]

    def test_concurrent_reader_sees_only_whole_records(self, tmp_path):
        path = tmp_path / "hb"
        publisher = HeartbeatPublisher(path)
        publisher.publish(HeartbeatStatus.SYNCING, project="p0", error="x" * 4096 + "|0")
        done = threading.Event()

        def write():
            try:
                for n in range(1, 400):
                    status = HeartbeatStatus.ERROR if n % 2 else HeartbeatStatus.SYNCING
                    publisher.publish(
                        status, project=f"p{n}", last_backup=n, error="x" * 4096 + f"|{n}"
                    )
            finally:
                done.set()

        writer = threading.Thread(target=write)
        writer.start()
        reads = 0
        while not done.is_set() or reads == 0:
            record = read_heartbeat(path)
            assert record is not None
            n = record.last_backup
            assert record.project == f"p{n}"
            assert record.error == "x" * 4096 + f"|{n}"
            assert record.status == ("error" if n % 2 else "syncing")
            reads += 1
        writer.join()
        assert read_heartbeat(path).last_backup == 399


class TestRead:
    def test_missing_and_malformed(self, tmp_path):
        assert read_heartbeat(tmp_path / "nope") is None
        bad = tmp_path / "bad"
        bad.write_text('{"status": "healthy"}')
        assert read_heartbeat(bad) is None
        bad.write_text("[1, 2]")
        assert read_heartbeat(bad) is None

    def test_unknown_status_still_parses(self, tmp_path):
        path = tmp_path / "hb"
        path.write_text(json.dumps({"timestamp": 1, "status": "paused", "extra": True}))
        record = read_heartbeat(path)
        assert isinstance(record, HeartbeatRecord)
        assert record.known_status is None
