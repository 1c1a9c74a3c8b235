"""Checkpoint engine.

A checkpoint is a snapshot of the whole working tree stored as a commit
that only a ref points at:

    refs/checkpoints/<missionID>-<N>         ->  commit "checkpoint: <missionID>-<N>"
    refs/checkpoints/<missionID>-baseline    ->  snapshot taken by the first checkpoint

The snapshot commit is never left on the user's branch. create() commits,
records the ref, then moves HEAD back with a mixed reset so the working
tree and the branch look exactly as they did before the call.

N is one more than the highest existing suffix for the mission. The
baseline ref is written once, by the first checkpoint of a mission, and
marks where the mission started: restore_all() goes back to it and
consolidate() squashes everything since it into one commit.
"""

from __future__ import annotations

import logging
from pathlib import Path

from mission_toolkit.config import MissionConfig
from mission_toolkit.errors import Err, MissionError, Ok, Result, conflict, invalid_argument, not_found
from mission_toolkit.git import GitClient
from mission_toolkit.logging import log_checkpoint_event
from mission_toolkit.types import CheckpointName

logger = logging.getLogger(__name__)

COMMIT_MESSAGE_PREFIX = "checkpoint: "
BASELINE_SUFFIX = "baseline"

# Characters git refuses in ref names, plus whitespace
_INVALID_REF_CHARS = set(" ~^:?*[\\\t\n\r")


def _validate_name(value: str, what: str) -> MissionError | None:
    if not value or not value.strip():
        return invalid_argument(f"{what} cannot be empty")
    if (
        any(c in _INVALID_REF_CHARS for c in value)
        or ".." in value
        or value.startswith(("-", "/"))
        or value.endswith((".", "/", ".lock"))
    ):
        return invalid_argument(f"invalid {what}: {value}", value=value)
    return None


def _suffix_number(name: str, mission_id: str) -> int | None:
    """N for "<mission_id>-N", None if name belongs to another mission."""
    prefix = f"{mission_id}-"
    if not name.startswith(prefix):
        return None
    suffix = name[len(prefix) :]
    if not suffix.isdigit():
        return None
    return int(suffix)


class CheckpointService:
    """Create, revert and clear checkpoints in one repository."""

    def __init__(self, workdir: Path, config: MissionConfig | None = None, git: GitClient | None = None):
        self.workdir = Path(workdir)
        self.config = config or MissionConfig()
        self.git = git or GitClient(self.workdir, timeout=self.config.git_timeout)

    @property
    def ref_prefix(self) -> str:
        prefix = self.config.checkpoint_ref_prefix
        return prefix if prefix.endswith("/") else f"{prefix}/"

    def _ref(self, name: str) -> str:
        return f"{self.ref_prefix}{name}"

    def _baseline_ref(self, mission_id: str) -> str:
        return self._ref(f"{mission_id}-{BASELINE_SUFFIX}")

    def baseline(self, mission_id: str) -> Result[str | None, MissionError]:
        """Commit the mission's baseline ref points at, Ok(None) if there is none."""
        if error := _validate_name(mission_id, "mission id"):
            return Err(error)
        return self.git.resolve_ref(self._baseline_ref(mission_id))

    def list(self, mission_id: str) -> Result[list[CheckpointName], MissionError]:
        """Checkpoint names for a mission, ordered by number."""
        if error := _validate_name(mission_id, "mission id"):
            return Err(error)

        refs = self.git.list_refs(self.ref_prefix)
        if refs.is_err():
            return Err(refs.unwrap_err().wrap("listing checkpoints"))

        numbered = []
        for ref in refs.unwrap():
            name = ref[len(self.ref_prefix) :]
            number = _suffix_number(name, mission_id)
            if number is not None:
                numbered.append((number, name))

        return Ok([CheckpointName(name) for _, name in sorted(numbered)])

    def create(self, mission_id: str) -> Result[CheckpointName, MissionError]:
        """Snapshot the working tree as <mission_id>-<N>.

        If the tree is clean the checkpoint points at HEAD. On failure
        after the snapshot commit, HEAD is moved back before returning.
        """
        existing = self.list(mission_id)
        if existing.is_err():
            return existing

        numbers = [_suffix_number(name, mission_id) for name in existing.unwrap()]
        name = CheckpointName(f"{mission_id}-{max(numbers, default=0) + 1}")

        head = self.git.head()
        if head.is_err():
            return Err(head.unwrap_err().wrap("creating checkpoint: repository has no HEAD commit"))
        original_head = head.unwrap()

        staged = self.git.add_all()
        if staged.is_err():
            return Err(staged.unwrap_err().wrap(f"creating checkpoint {name}: staging changes"))

        committed = self.git.commit(f"{COMMIT_MESSAGE_PREFIX}{name}", no_verify=True)
        if committed.is_err():
            self._restore_head(original_head)
            return Err(committed.unwrap_err().wrap(f"creating checkpoint {name}: committing snapshot"))

        snapshot = committed.unwrap()
        if snapshot is None:
            logger.debug("Working tree clean, checkpoint points at HEAD")
            snapshot = original_head

        created = self.git.create_ref(self._ref(name), snapshot)
        if created.is_err():
            self._restore_head(original_head)
            return Err(created.unwrap_err().wrap(f"creating checkpoint {name}: writing ref"))

        if snapshot != original_head:
            restored = self.git.reset(original_head, mode="mixed")
            if restored.is_err():
                # The ref is valid, so revert still works; HEAD stays on the snapshot
                return Err(restored.unwrap_err().wrap(f"checkpoint {name} created but HEAD was not restored"))

        if not numbers and (error := self._ensure_baseline(mission_id, snapshot)):
            return Err(error.wrap(f"checkpoint {name} created but the baseline was not recorded"))

        log_checkpoint_event("created", name)
        return Ok(name)

    def revert(self, name: str) -> Result[CheckpointName, MissionError]:
        """Restore the working tree from a checkpoint and delete it.

        HEAD and the current branch stay where they are; only tracked
        file contents and the index change.
        """
        if error := _validate_name(name, "checkpoint name"):
            return Err(error)

        ref = self._ref(name)
        resolved = self.git.resolve_ref(ref)
        if resolved.is_err():
            return Err(resolved.unwrap_err().wrap(f"reverting checkpoint {name}"))
        snapshot = resolved.unwrap()
        if snapshot is None:
            return Err(not_found(f"checkpoint not found: {name}", checkpoint=name))

        head = self.git.head()
        if head.is_err():
            return Err(head.unwrap_err().wrap(f"reverting checkpoint {name}"))
        current_head = head.unwrap()

        reset = self.git.hard_reset(snapshot)
        if reset.is_err():
            return Err(reset.unwrap_err().wrap(f"reverting checkpoint {name}: restoring files"))

        if snapshot != current_head:
            moved = self.git.reset(current_head, mode="mixed")
            if moved.is_err():
                return Err(moved.unwrap_err().wrap(f"reverting checkpoint {name}: restoring HEAD"))

        deleted = self.git.delete_ref(ref)
        if deleted.is_err():
            return Err(deleted.unwrap_err().wrap(f"reverting checkpoint {name}: deleting ref"))

        log_checkpoint_event("reverted", name)
        return Ok(CheckpointName(name))

    def clear(self, mission_id: str) -> Result[int, MissionError]:
        """Delete every checkpoint of a mission, and its baseline ref.

        Refs that disappear while clearing are counted as deleted. The
        returned count covers numbered checkpoints only.
        """
        names = self.list(mission_id)
        if names.is_err():
            return names

        deleted = 0
        for name in names.unwrap():
            if error := self._delete_ref(self._ref(name)):
                return Err(error.wrap(f"clearing checkpoints: deleted {deleted} before failure"))
            deleted += 1
            log_checkpoint_event("cleared", name)

        if error := self._delete_ref(self._baseline_ref(mission_id)):
            return Err(error.wrap(f"clearing checkpoints: deleted {deleted}, baseline kept"))

        return Ok(deleted)

    def restore_all(self, mission_id: str) -> Result[int, MissionError]:
        """Undo the whole mission: go back to the baseline and clear checkpoints.

        Files, the index and HEAD return to where they were when the first
        checkpoint was taken. Commits made on the branch since then are
        dropped from it.

        Returns:
            Ok(number of checkpoints cleared)
        """
        found = self.baseline(mission_id)
        if found.is_err():
            return Err(found.unwrap_err().wrap(f"restoring mission {mission_id}"))
        baseline = found.unwrap()
        if baseline is None:
            return Err(not_found(f"no baseline for mission {mission_id}", mission_id=mission_id))

        start = self._branch_point(baseline)
        if start.is_err():
            return Err(start.unwrap_err().wrap(f"restoring mission {mission_id}"))

        reset = self.git.hard_reset(baseline)
        if reset.is_err():
            return Err(reset.unwrap_err().wrap(f"restoring mission {mission_id}: restoring files"))

        if start.unwrap() != baseline:
            moved = self.git.reset(start.unwrap(), mode="mixed")
            if moved.is_err():
                return Err(moved.unwrap_err().wrap(f"restoring mission {mission_id}: resetting HEAD"))

        cleared = self.clear(mission_id)
        if cleared.is_err():
            return Err(cleared.unwrap_err().wrap(f"restoring mission {mission_id}"))

        log_checkpoint_event("restored", f"{mission_id}-{BASELINE_SUFFIX}")
        return cleared

    def consolidate(self, mission_id: str, message: str) -> Result[str, MissionError]:
        """Squash the mission's work into one commit and clear its checkpoints.

        The branch is soft-reset to where the mission started, then the
        whole working tree is committed with message. Without a baseline
        the commit simply goes on top of HEAD.

        Returns:
            Ok(sha of the new commit)
        """
        if not message or not message.strip():
            return Err(invalid_argument("commit message cannot be empty"))

        found = self.baseline(mission_id)
        if found.is_err():
            return Err(found.unwrap_err().wrap(f"consolidating mission {mission_id}"))

        head = self.git.head()
        if head.is_err():
            return Err(head.unwrap_err().wrap(f"consolidating mission {mission_id}"))
        original_head = head.unwrap()

        target = original_head
        if found.unwrap() is not None:
            start = self._branch_point(found.unwrap())
            if start.is_err():
                return Err(start.unwrap_err().wrap(f"consolidating mission {mission_id}"))
            target = start.unwrap()

        if target != original_head:
            moved = self.git.reset(target, mode="soft")
            if moved.is_err():
                return Err(moved.unwrap_err().wrap(f"consolidating mission {mission_id}: resetting to {target[:8]}"))

        staged = self.git.add_all()
        committed = staged if staged.is_err() else self.git.commit(message, no_verify=False)
        if committed.is_err() or committed.unwrap() is None:
            self._move_head_back(original_head)
            if committed.is_err():
                return Err(committed.unwrap_err().wrap(f"consolidating mission {mission_id}: committing"))
            return Err(conflict(f"nothing to consolidate for mission {mission_id}", mission_id=mission_id))
        sha = committed.unwrap()

        cleared = self.clear(mission_id)
        if cleared.is_err():
            logger.warning(f"Consolidated as {sha[:8]} but checkpoints were not cleared: {cleared.unwrap_err()}")

        log_checkpoint_event("consolidated", f"{mission_id} as {sha[:8]}")
        return Ok(sha)

    def _ensure_baseline(self, mission_id: str, commit: str) -> MissionError | None:
        """Point the baseline ref at commit unless the mission already has one."""
        ref = self._baseline_ref(mission_id)
        existing = self.git.resolve_ref(ref)
        if existing.is_err():
            return existing.unwrap_err()
        if existing.unwrap() is not None:
            logger.debug(f"Keeping baseline {existing.unwrap()[:8]} for {mission_id}")
            return None

        created = self.git.create_ref(ref, commit)
        if created.is_err():
            return created.unwrap_err()
        return None

    def _branch_point(self, snapshot: str) -> Result[str, MissionError]:
        """Commit HEAD was on when snapshot was taken.

        A snapshot commit made by create() sits on top of that commit; a
        clean-tree checkpoint is that commit itself.
        """
        message = self.git.commit_message(snapshot)
        if message.is_err():
            return message
        if message.unwrap().startswith(COMMIT_MESSAGE_PREFIX.rstrip()):
            return self.git.parent(snapshot)
        return Ok(snapshot)

    def _delete_ref(self, ref: str) -> MissionError | None:
        """Delete ref; a ref that is already gone is not an error."""
        existing = self.git.resolve_ref(ref)
        if existing.is_ok() and existing.unwrap() is None:
            return None

        result = self.git.delete_ref(ref)
        if result.is_ok():
            return None
        still_there = self.git.resolve_ref(ref)
        if still_there.is_ok() and still_there.unwrap() is None:
            logger.debug(f"Ref {ref} already gone")
            return None
        return result.unwrap_err()

    def _move_head_back(self, commit: str) -> None:
        """Best-effort soft reset to commit after a failed consolidate."""
        current = self.git.head()
        if current.is_ok() and current.unwrap() == commit:
            return

        result = self.git.reset(commit, mode="soft")
        if result.is_err():
            logger.warning(f"Could not move HEAD back to {commit[:8]}: {result.unwrap_err()}")

    def _restore_head(self, commit: str) -> None:
        """Best-effort move of HEAD back to commit after a failed create."""
        current = self.git.head()
        if current.is_ok() and current.unwrap() == commit:
            return

        result = self.git.reset(commit, mode="mixed")
        if result.is_err():
            logger.warning(f"Could not restore HEAD to {commit[:8]}: {result.unwrap_err()}")
        else:
            logger.warning(f"Rolled HEAD back to {commit[:8]} after failed checkpoint")
