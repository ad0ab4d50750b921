"""Tests for the subprocess execution pipeline."""

import pytest

from checkpoint.core.errors import ExecutionFailedError
from checkpoint.orchestrator import CommandPipeline, PipelineResult, RunOutcome, classify_outcome


def shell(script, **kwargs):
    return CommandPipeline(["sh", "-c", script], **kwargs)


class TestCommandPipeline:
    def test_runs_in_project_dir_with_env(self, project):
        result = shell('pwd -P; echo "$CHECKPOINT_PROJECT_NAME"; echo "$CHECKPOINT_BACKUP_DIR"').run(project)
        lines = result.output.splitlines()
        assert result.exit_code == 0
        assert lines[0] == str(project.path)
        assert lines[1] == "web"
        assert lines[2] == str(project.backup_root)

    def test_force_flag_appended(self, project):
        # with sh -c, the first extra argument becomes $0
        assert shell('echo "$0"').run(project, force=True).output.strip() == "--force"
        assert shell('echo "$0"', force_flag="-f").run(project, force=True).output.strip() == "-f"

    def test_exit_status(self, project):
        result = shell("echo broken >&2; exit 3").run(project)
        assert result.exit_code == 3
        assert "broken" in result.output
        assert classify_outcome(result) is RunOutcome.FAILED

    def test_warning_marker(self, project):
        script = 'echo "copied 3 files"; echo "  WARNING: cloud upload skipped"'
        assert shell(script).run(project).warnings == []
        result = shell(script, warning_marker="WARNING:").run(project)
        assert result.warnings == ["WARNING: cloud upload skipped"]
        assert classify_outcome(result) is RunOutcome.BACKED_UP_WITH_WARNINGS

    def test_timeout(self, project):
        with pytest.raises(ExecutionFailedError) as info:
            CommandPipeline(["sleep", "5"], timeout=0.2).run(project)
        assert info.value.context.project == "web"

    def test_missing_command(self, project, tmp_path):
        with pytest.raises(ExecutionFailedError):
            CommandPipeline([str(tmp_path / "no-such-tool")]).run(project)

    def test_empty_command(self):
        with pytest.raises(ValueError):
            CommandPipeline([])


class TestClassify:
    @pytest.mark.parametrize(
        "result, outcome",
        [
            (PipelineResult(exit_code=0), RunOutcome.BACKED_UP),
            (PipelineResult(exit_code=0, warnings=["w"]), RunOutcome.BACKED_UP_WITH_WARNINGS),
            (PipelineResult(exit_code=1, warnings=["w"]), RunOutcome.FAILED),
        ],
    )
    def test_outcomes(self, result, outcome):
        assert classify_outcome(result) is outcome
