"""Mission directory conventions and mission identity.

Every engine works on files under one `.mission/` directory. The file
name constants below are shared by MissionPaths and the engines.

The mission ID is the namespace used for checkpoint refs. It is read
from the `id` field of mission.md when a planner has written one,
otherwise from the `.mission/id` file, which is created on demand:

    20261019142233-4821
    └─ local time ─┘ └ random
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from mission_toolkit.atomic import atomic_write_text, read_text
from mission_toolkit.config import MissionConfig
from mission_toolkit.errors import Err, ErrorKind, MissionError, Ok, Result, io_error, malformed, not_found
from mission_toolkit.md import read_document
from mission_toolkit.types import MissionId

logger = logging.getLogger(__name__)

BACKLOG_FILENAME = "backlog.md"
DIAGNOSIS_FILENAME = "diagnosis.md"
MISSION_FILENAME = "mission.md"
ID_FILENAME = "id"

# Placeholder status values used when no live mission state is available
STATUS_ARCHIVED = "archived"
STATUS_UNKNOWN = "unknown"

MISSION_ID_PATTERN = re.compile(r"^\d{14}-\d{4}$")


@dataclass
class MissionPaths:
    """Resolved locations of mission artifacts for one project."""

    root: Path
    config: MissionConfig = field(default_factory=MissionConfig)

    @property
    def mission_dir(self) -> Path:
        return Path(self.root) / self.config.mission_dir_name

    @property
    def backlog_path(self) -> Path:
        return self.mission_dir / BACKLOG_FILENAME

    @property
    def diagnosis_path(self) -> Path:
        return self.mission_dir / DIAGNOSIS_FILENAME

    @property
    def mission_path(self) -> Path:
        return self.mission_dir / MISSION_FILENAME

    @property
    def id_path(self) -> Path:
        return self.mission_dir / ID_FILENAME


def ensure_mission_dir(paths: MissionPaths) -> Result[Path, MissionError]:
    """Create .mission/ if needed."""
    try:
        paths.mission_dir.mkdir(parents=True, exist_ok=True, mode=paths.config.dir_mode)
    except OSError as e:
        return Err(io_error(f"creating {paths.mission_dir}: {e}", path=str(paths.mission_dir)))
    return Ok(paths.mission_dir)


# =============================================================================
# Mission identity
# =============================================================================


def generate_mission_id(now: datetime | None = None) -> MissionId:
    """New mission ID: local timestamp plus four random digits."""
    now = now or datetime.now()
    suffix = random.randint(0, 9999)  # noqa: S311 - uniqueness, not secrecy
    return MissionId(f"{now.strftime('%Y%m%d%H%M%S')}-{suffix:04d}")


def is_valid_mission_id(value: str) -> bool:
    return bool(MISSION_ID_PATTERN.match(value))


def _read_id_file(paths: MissionPaths) -> Result[MissionId | None, MissionError]:
    result = read_text(paths.id_path)
    if result.is_err():
        if result.unwrap_err().code == ErrorKind.NOT_FOUND:
            return Ok(None)
        return result

    value = result.unwrap().strip()
    if not value:
        return Ok(None)
    if not is_valid_mission_id(value):
        return Err(malformed(f"invalid mission id in {paths.id_path}: {value!r}", path=str(paths.id_path)))
    return Ok(MissionId(value))


def get_or_create_mission_id(paths: MissionPaths) -> Result[MissionId, MissionError]:
    """Read .mission/id, creating it with a fresh ID if absent."""
    existing = _read_id_file(paths)
    if existing.is_err():
        return existing
    if existing.unwrap() is not None:
        return Ok(existing.unwrap())

    mission_id = generate_mission_id()
    written = atomic_write_text(
        paths.id_path,
        f"{mission_id}\n",
        mode=paths.config.file_mode,
        dir_mode=paths.config.dir_mode,
    )
    if written.is_err():
        return written

    logger.info(f"Created mission id {mission_id}")
    return Ok(mission_id)


def get_current_mission_id(paths: MissionPaths) -> Result[MissionId, MissionError]:
    """ID of the active mission.

    mission.md frontmatter wins over the id file. Never creates anything.
    """
    if paths.mission_path.exists():
        doc = read_document(paths.mission_path)
        if doc.is_ok():
            fm_id = doc.unwrap().frontmatter.get("id")
            if fm_id:
                return Ok(MissionId(str(fm_id)))
        else:
            logger.warning(f"Ignoring unreadable {paths.mission_path}: {doc.unwrap_err()}")

    from_file = _read_id_file(paths)
    if from_file.is_err():
        return from_file
    if from_file.unwrap() is None:
        return Err(not_found("no active mission id", path=str(paths.id_path)))
    return Ok(from_file.unwrap())


def read_mission_status(paths: MissionPaths) -> str:
    """Status field of mission.md, or "unknown" when it cannot be read."""
    if not paths.mission_path.exists():
        return STATUS_UNKNOWN

    doc = read_document(paths.mission_path)
    if doc.is_err():
        logger.warning(f"Cannot read mission status: {doc.unwrap_err()}")
        return STATUS_UNKNOWN

    status = doc.unwrap().frontmatter.get("status")
    return str(status) if status else STATUS_UNKNOWN
