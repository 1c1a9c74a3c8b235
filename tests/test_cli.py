"""Tests for the `m` command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from mission_toolkit import __version__
from mission_toolkit.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, tmp_path: Path):
    """Invoke `m` against tmp_path as project root."""

    def _invoke(*args: str, root: Path | None = None):
        return runner.invoke(main, ["--root", str(root or tmp_path), *args])

    return _invoke


def test_version(runner: CliRunner):
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_broken_config_fails_cleanly(invoke, tmp_path: Path):
    (tmp_path / ".mission").mkdir()
    (tmp_path / ".mission" / "config.yaml").write_text("log_level: [unclosed\n")

    result = invoke("check", "ship it")

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)


class TestCheck:
    """Tests for `m check`."""

    def test_empty_intent(self, invoke):
        result = invoke("check", "")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["is_valid"] is False
        assert payload["message"] == "Input is empty or whitespace"

    def test_valid_intent(self, invoke):
        payload = json.loads(invoke("check", "add rate limiting").output)

        assert payload["next_step"] == "PROCEED with execution"

    def test_diagnosis_detected(self, invoke):
        invoke("diagnosis", "create", "500 on login")

        payload = json.loads(invoke("check", "anything").output)

        assert payload["next_step"] == "DIAGNOSIS_DETECTED"
        assert payload["diagnosis"]["id"].startswith("DIAG-")


class TestBacklogCommands:
    """Tests for `m backlog ...`."""

    def test_add_and_list(self, invoke, tmp_path: Path):
        result = invoke("backlog", "add", "Ship v1", "--type", "feature")

        assert result.exit_code == 0
        assert "Ship v1" in result.output
        assert (tmp_path / ".mission" / "backlog.md").is_file()

        listed = invoke("backlog", "list")
        assert listed.exit_code == 0
        assert "- [ ] Ship v1" in listed.output

    def test_add_multiple(self, invoke):
        result = invoke("backlog", "add", "one", "two", "-t", "bugfix")

        assert result.exit_code == 0
        assert invoke("backlog", "list", "-i", "bugfix").output.splitlines() == ["- [ ] one", "- [ ] two"]

    def test_pattern_requires_single_item(self, invoke):
        result = invoke("backlog", "add", "a", "b", "-t", "refactor", "-p", "ex")

        assert result.exit_code == 1

    def test_pattern_count(self, invoke):
        for _ in range(3):
            invoke("backlog", "add", "Extract X", "-t", "refactor", "-p", "ex")

        result = invoke("backlog", "pattern-count", "ex")

        assert result.exit_code == 0
        assert result.output.strip() == "4"

    def test_complete_and_cleanup(self, invoke):
        invoke("backlog", "add", "Fix login", "-t", "bugfix")

        assert invoke("backlog", "complete", "login").exit_code == 0
        assert invoke("backlog", "list").output.strip() == "No backlog items"
        assert "- [x] Fix login" in invoke("backlog", "list", "--all").output

        cleaned = invoke("backlog", "cleanup")
        assert cleaned.exit_code == 0
        assert "Removed 1" in cleaned.output

    def test_complete_missing_item(self, invoke):
        assert invoke("backlog", "complete", "nothing like this").exit_code == 1

    def test_include_and_exclude_conflict(self, invoke):
        assert invoke("backlog", "list", "-i", "feature", "-e", "bugfix").exit_code == 1

    def test_unknown_type_rejected(self, invoke):
        result = invoke("backlog", "add", "x", "--type", "chore")

        assert result.exit_code == 2


class TestDiagnosisCommands:
    """Tests for `m diagnosis ...`."""

    def test_full_flow(self, invoke, tmp_path: Path):
        assert invoke("diagnosis", "create", "500 on login").exit_code == 0
        assert invoke("diagnosis", "update", "-s", "ROOT-CAUSE", "-c", "session not init").exit_code == 0
        assert invoke("diagnosis", "update", "-s", "affected-files", "--item", "auth.go").exit_code == 0
        assert invoke("diagnosis", "update", "--status", "confirmed", "--confidence", "high").exit_code == 0

        result = invoke("diagnosis", "finalize")

        assert result.exit_code == 0
        assert json.loads(result.output) == {"valid": True, "message": "Diagnosis validated successfully"}
        text = (tmp_path / ".mission" / "diagnosis.md").read_text()
        assert "- auth.go" in text
        assert "status: confirmed" in text

    def test_update_without_diagnosis(self, invoke):
        assert invoke("diagnosis", "update", "-s", "ROOT CAUSE", "-c", "x").exit_code == 1

    def test_update_nothing(self, invoke):
        invoke("diagnosis", "create", "x")

        assert invoke("diagnosis", "update").exit_code == 1

    def test_status_with_section_rejected(self, invoke):
        invoke("diagnosis", "create", "x")

        assert invoke("diagnosis", "update", "--status", "confirmed", "-s", "ROOT CAUSE", "-c", "y").exit_code == 1


class TestCheckpointCommands:
    """Tests for `m checkpoint ...`."""

    def test_create_list_revert(self, invoke, git_repo: Path):
        (git_repo / "a.txt").write_text("v1")

        created = invoke("checkpoint", "create", "-m", "m1", root=git_repo)
        assert created.exit_code == 0
        assert created.output.strip() == "m1-1"

        listed = invoke("checkpoint", "list", "-m", "m1", root=git_repo)
        assert listed.output.splitlines() == ["m1-1"]

        (git_repo / "a.txt").write_text("v2")
        assert invoke("checkpoint", "revert", "m1-1", root=git_repo).exit_code == 0
        assert (git_repo / "a.txt").read_text() == "v1"

        assert invoke("checkpoint", "revert", "m1-1", root=git_repo).exit_code == 1

    def test_create_uses_current_mission(self, invoke, git_repo: Path):
        mission_id = invoke("id", root=git_repo).output.strip()

        created = invoke("checkpoint", "create", root=git_repo)

        assert created.exit_code == 0
        assert created.output.strip() == f"{mission_id}-1"

    def test_clear(self, invoke, git_repo: Path):
        invoke("checkpoint", "create", "-m", "m1", root=git_repo)
        invoke("checkpoint", "create", "-m", "m1", root=git_repo)

        result = invoke("checkpoint", "clear", "-m", "m1", root=git_repo)

        assert result.exit_code == 0
        assert "Deleted 2" in result.output

    def test_list_without_mission(self, invoke, git_repo: Path):
        assert invoke("checkpoint", "list", root=git_repo).exit_code == 1

    def test_restore_all(self, invoke, git_repo: Path):
        (git_repo / "a.txt").write_text("v1")
        invoke("checkpoint", "create", "-m", "m1", root=git_repo)
        (git_repo / "a.txt").write_text("v2")
        invoke("checkpoint", "create", "-m", "m1", root=git_repo)
        (git_repo / "a.txt").write_text("v3")

        result = invoke("checkpoint", "restore-all", "-m", "m1", root=git_repo)

        assert result.exit_code == 0
        assert "deleted 2" in result.output
        assert (git_repo / "a.txt").read_text() == "v1"
        assert invoke("checkpoint", "restore-all", "-m", "m1", root=git_repo).exit_code == 1

    def test_consolidate(self, invoke, git_repo: Path, run_git):
        (git_repo / "a.txt").write_text("v1")
        invoke("checkpoint", "create", "-m", "m1", root=git_repo)
        (git_repo / "a.txt").write_text("v2")

        result = invoke("checkpoint", "consolidate", "-m", "m1", "-M", "Add a", root=git_repo)

        assert result.exit_code == 0
        assert result.output.strip() == run_git("rev-parse", "HEAD")
        assert run_git("show", "HEAD:a.txt") == "v2"
        assert invoke("checkpoint", "list", "-m", "m1", root=git_repo).output.strip() == "No checkpoints"

    def test_consolidate_requires_message(self, invoke, git_repo: Path):
        assert invoke("checkpoint", "consolidate", "-m", "m1", root=git_repo).exit_code == 2
