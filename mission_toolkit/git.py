"""Git adapter for Mission Toolkit.

A narrow facade over the git CLI, scoped to one working directory.
Only the checkpoint engine talks to git; everything it needs is here:

- staging and committing the whole working tree
- creating, resolving, listing and deleting refs
- reading a commit's message and parent
- resetting HEAD (soft, mixed or hard)

Unlike read-only context helpers, these calls mutate the repository, so
failures are returned as io_error results carrying git's stderr rather
than being swallowed.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from mission_toolkit.errors import Err, MissionError, Ok, Result, invalid_argument, io_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

RESET_MODES = frozenset({"soft", "mixed", "hard"})


class GitClient:
    """Run git commands against a single working directory."""

    def __init__(self, workdir: Path, timeout: int = DEFAULT_TIMEOUT):
        self.workdir = Path(workdir)
        self.timeout = timeout

    def _run(self, args: list[str]) -> Result[str, MissionError]:
        """Run a git command and return stripped stdout.

        Args:
            args: Git command arguments (without 'git' prefix)

        Returns:
            Ok(stdout) on exit code 0, Err(io_error) otherwise
        """
        argv = ["git", *args]
        try:
            # Security: shell=False (default), args are internal constants or validated names
            result = subprocess.run(
                argv,  # noqa: S603, S607
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=self.workdir,
            )
        except subprocess.TimeoutExpired:
            logger.debug(f"Git command timed out: {' '.join(argv)}")
            return Err(io_error(f"git {args[0]} timed out after {self.timeout}s", argv=argv))
        except (FileNotFoundError, OSError) as e:
            logger.debug(f"Git command failed: {e}")
            return Err(io_error(f"git {args[0]} failed: {e}", argv=argv))

        if result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip()
            logger.debug(f"git {' '.join(args)} exited {result.returncode}: {stderr}")
            return Err(
                io_error(
                    f"git {args[0]} failed: {stderr}",
                    argv=argv,
                    returncode=result.returncode,
                )
            )

        return Ok(result.stdout.strip())

    # =========================================================================
    # Inspection
    # =========================================================================

    def is_repo(self) -> bool:
        return self._run(["rev-parse", "--git-dir"]).is_ok()

    def head(self) -> Result[str, MissionError]:
        """Full SHA of HEAD."""
        return self._run(["rev-parse", "--verify", "HEAD"])

    def status_porcelain(self) -> Result[str, MissionError]:
        return self._run(["status", "--porcelain"])

    def resolve_ref(self, ref: str) -> Result[str | None, MissionError]:
        """Commit SHA a ref points at, or Ok(None) when the ref does not exist."""
        result = self._run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        if result.is_err():
            # --quiet exits 1 with no output for a missing ref
            if result.unwrap_err().context.get("returncode") == 1:
                return Ok(None)
            return result
        return Ok(result.unwrap() or None)

    def commit_message(self, commit: str) -> Result[str, MissionError]:
        """Full message of commit."""
        return self._run(["log", "-1", "--format=%B", commit])

    def parent(self, commit: str) -> Result[str, MissionError]:
        """First parent of commit; an error for a root commit."""
        return self._run(["rev-parse", "--verify", f"{commit}^"])

    def list_refs(self, prefix: str) -> Result[list[str], MissionError]:
        """Full ref names under prefix (e.g. "refs/checkpoints/")."""
        result = self._run(["for-each-ref", "--format=%(refname)", prefix])
        if result.is_err():
            return result
        return Ok([line for line in result.unwrap().splitlines() if line.strip()])

    # =========================================================================
    # Mutation
    # =========================================================================

    def add_all(self) -> Result[None, MissionError]:
        """Stage every change in the working tree, including untracked files."""
        result = self._run(["add", "-A"])
        if result.is_err():
            return result
        return Ok(None)

    def commit(self, message: str, no_verify: bool = True) -> Result[str | None, MissionError]:
        """Commit the index.

        Returns:
            Ok(sha) of the new commit, Ok(None) if there was nothing to commit
        """
        status = self._run(["diff", "--cached", "--name-only"])
        if status.is_err():
            return status
        if not status.unwrap():
            logger.debug("Index unchanged, no commit needed")
            return Ok(None)

        args = ["commit", "-m", message]
        if no_verify:
            args.append("--no-verify")
        result = self._run(args)
        if result.is_err():
            return result

        return self.head()

    def create_ref(self, ref: str, commit: str) -> Result[None, MissionError]:
        result = self._run(["update-ref", ref, commit])
        if result.is_err():
            return result
        logger.debug(f"Created ref {ref} -> {commit[:8]}")
        return Ok(None)

    def delete_ref(self, ref: str) -> Result[None, MissionError]:
        result = self._run(["update-ref", "-d", ref])
        if result.is_err():
            return result
        logger.debug(f"Deleted ref {ref}")
        return Ok(None)

    def reset(self, commit: str, mode: str = "mixed") -> Result[None, MissionError]:
        """Move HEAD (and the current branch) to commit."""
        if mode not in RESET_MODES:
            return Err(invalid_argument(f"invalid reset mode: {mode}", mode=mode))
        result = self._run(["reset", "--quiet", f"--{mode}", commit])
        if result.is_err():
            return result
        return Ok(None)

    def hard_reset(self, commit: str) -> Result[None, MissionError]:
        """Reset index and working tree to commit."""
        return self.reset(commit, mode="hard")
