"""Tests for version history across mirror and archived generations."""

from datetime import datetime, timedelta, timezone

from checkpoint.retention import CURRENT_LABEL, Generation, SnapshotEntry, version_history

T0 = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def entry(offset_hours, size, generation=Generation.ARCHIVED, path="src/app.py"):
    return SnapshotEntry(path, T0 + timedelta(hours=offset_hours), size=size, generation=generation)


class TestVersionHistory:
    def test_newest_first(self):
        versions = version_history("src/app.py", [entry(0, 1), entry(5, 2), entry(2, 3)])
        assert [v.size for v in versions] == [2, 3, 1]

    def test_other_paths_ignored(self):
        versions = version_history("src/app.py", [entry(0, 1), entry(1, 1, path="README.md")])
        assert len(versions) == 1

    def test_mirror_wins_over_archived_duplicate(self):
        versions = version_history(
            "src/app.py",
            [entry(3, 10), entry(3, 10, Generation.MIRROR), entry(0, 8)],
        )
        assert [v.generation for v in versions] == [Generation.MIRROR, Generation.ARCHIVED]
        assert versions[0].label == "mirror"
        assert versions[1].label == "20250601_090000"

    def test_same_time_different_size_kept(self):
        versions = version_history("src/app.py", [entry(3, 10), entry(3, 11)])
        assert len(versions) == 2

    def test_current_prepended_when_working_copy_exists(self, tmp_path):
        live = tmp_path / "app.py"
        live.write_text("print('hi')\n")
        versions = version_history("src/app.py", [entry(0, 1)], working_copy=live)
        assert versions[0].label == CURRENT_LABEL
        assert versions[0].generation is Generation.CURRENT
        assert versions[0].size == live.stat().st_size
        assert versions[0].to_dict()["location"] == str(live)

    def test_missing_working_copy_adds_nothing(self, tmp_path):
        versions = version_history("src/app.py", [entry(0, 1)], working_copy=tmp_path / "gone.py")
        assert [v.label for v in versions] == ["20250601_090000"]

    def test_empty(self):
        assert version_history("src/app.py", []) == []
