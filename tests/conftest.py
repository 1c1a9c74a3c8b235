"""Shared fixtures for Mission Toolkit tests."""

import subprocess
from pathlib import Path

import pytest


def _init_git_repo(path: Path) -> bool:
    """Initialize a git repo with one commit at the given path."""
    try:
        subprocess.run(["git", "init"], cwd=path, capture_output=True, check=True)
        # Configure git user for commits
        subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=path, capture_output=True, check=True)
        subprocess.run(["git", "config", "user.name", "Test User"], cwd=path, capture_output=True, check=True)
        subprocess.run(["git", "config", "commit.gpgsign", "false"], cwd=path, capture_output=True, check=True)
        # Create initial commit
        (path / "README.md").write_text("Test repo")
        subprocess.run(["git", "add", "."], cwd=path, capture_output=True, check=True)
        subprocess.run(["git", "commit", "-m", "Initial commit"], cwd=path, capture_output=True, check=True)
        return True
    except (OSError, subprocess.CalledProcessError):
        return False


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A fresh repository with an initial commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    if not _init_git_repo(repo):
        pytest.skip("Git not available")
    return repo


@pytest.fixture
def run_git(git_repo: Path):
    """Run git in the test repository and return stripped stdout."""

    def _run(*args: str) -> str:
        result = subprocess.run(["git", *args], cwd=git_repo, capture_output=True, text=True)
        return result.stdout.strip()

    return _run
