"""Tests for mission_toolkit.git module."""

import subprocess
from pathlib import Path
from unittest.mock import patch

from mission_toolkit.errors import ErrorKind
from mission_toolkit.git import GitClient


class TestRunGit:
    """Tests for GitClient._run() failure handling."""

    def test_git_not_installed(self, tmp_path: Path):
        """Missing git binary surfaces as io_error."""
        with patch("subprocess.run", side_effect=FileNotFoundError("git")):
            result = GitClient(tmp_path).head()

        assert result.is_err()
        assert result.unwrap_err().code == ErrorKind.IO_ERROR

    def test_timeout(self, tmp_path: Path):
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="git", timeout=1)):
            result = GitClient(tmp_path, timeout=1).head()

        assert result.is_err()
        assert "timed out" in result.unwrap_err().message

    def test_non_repo(self, tmp_path: Path):
        client = GitClient(tmp_path)

        assert not client.is_repo()
        error = client.head().unwrap_err()
        assert error.code == ErrorKind.IO_ERROR
        assert error.context["argv"][0] == "git"


class TestGitClient:
    """Tests against a real repository."""

    def test_is_repo_and_head(self, git_repo: Path, run_git):
        client = GitClient(git_repo)

        assert client.is_repo()
        assert client.head().unwrap() == run_git("rev-parse", "HEAD")

    def test_commit_nothing_returns_none(self, git_repo: Path):
        client = GitClient(git_repo)

        assert client.add_all().is_ok()
        assert client.commit("empty").unwrap() is None

    def test_commit_includes_untracked(self, git_repo: Path, run_git):
        client = GitClient(git_repo)
        (git_repo / "new.txt").write_text("hi")

        client.add_all()
        sha = client.commit("add new").unwrap()

        assert sha == run_git("rev-parse", "HEAD")
        assert run_git("show", "--name-only", "--format=", sha) == "new.txt"

    def test_ref_lifecycle(self, git_repo: Path):
        client = GitClient(git_repo)
        head = client.head().unwrap()

        assert client.create_ref("refs/checkpoints/m-1", head).is_ok()
        assert client.resolve_ref("refs/checkpoints/m-1").unwrap() == head
        assert client.list_refs("refs/checkpoints/").unwrap() == ["refs/checkpoints/m-1"]

        assert client.delete_ref("refs/checkpoints/m-1").is_ok()
        assert client.resolve_ref("refs/checkpoints/m-1").unwrap() is None
        assert client.list_refs("refs/checkpoints/").unwrap() == []

    def test_reset_modes(self, git_repo: Path):
        client = GitClient(git_repo)
        base = client.head().unwrap()
        (git_repo / "README.md").write_text("changed")
        client.add_all()
        client.commit("change")

        assert client.reset(base, mode="mixed").is_ok()
        assert client.head().unwrap() == base
        assert (git_repo / "README.md").read_text() == "changed"

        assert client.hard_reset(base).is_ok()
        assert (git_repo / "README.md").read_text() == "Test repo"

    def test_invalid_reset_mode(self, git_repo: Path):
        result = GitClient(git_repo).reset("HEAD", mode="keep-everything")

        assert result.unwrap_err().code == ErrorKind.INVALID_ARGUMENT

    def test_status_porcelain(self, git_repo: Path):
        client = GitClient(git_repo)
        assert client.status_porcelain().unwrap() == ""

        (git_repo / "dirty.txt").write_text("x")
        assert "dirty.txt" in client.status_porcelain().unwrap()

    def test_commit_message_and_parent(self, git_repo: Path):
        client = GitClient(git_repo)
        base = client.head().unwrap()
        (git_repo / "README.md").write_text("changed")
        client.add_all()
        sha = client.commit("checkpoint: m-1").unwrap()

        assert client.commit_message(sha).unwrap() == "checkpoint: m-1"
        assert client.parent(sha).unwrap() == base

    def test_root_commit_has_no_parent(self, git_repo: Path):
        client = GitClient(git_repo)

        assert client.parent(client.head().unwrap()).unwrap_err().code == ErrorKind.IO_ERROR
