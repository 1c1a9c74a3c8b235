"""Tests for mission_toolkit.mission module."""

from datetime import datetime
from pathlib import Path

import pytest

from mission_toolkit.backlog import BacklogManager
from mission_toolkit.config import MissionConfig
from mission_toolkit.diagnosis import DiagnosisManager
from mission_toolkit.errors import ErrorKind
from mission_toolkit.mission import (
    MissionPaths,
    ensure_mission_dir,
    generate_mission_id,
    get_current_mission_id,
    get_or_create_mission_id,
    is_valid_mission_id,
    read_mission_status,
)


@pytest.fixture
def paths(tmp_path: Path) -> MissionPaths:
    return MissionPaths(tmp_path)


class TestMissionPaths:
    """Tests for MissionPaths."""

    def test_default_layout(self, tmp_path: Path, paths: MissionPaths):
        assert paths.mission_dir == tmp_path / ".mission"
        assert paths.backlog_path == tmp_path / ".mission" / "backlog.md"
        assert paths.diagnosis_path == tmp_path / ".mission" / "diagnosis.md"
        assert paths.mission_path == tmp_path / ".mission" / "mission.md"
        assert paths.id_path == tmp_path / ".mission" / "id"

    def test_custom_dir_name(self, tmp_path: Path):
        paths = MissionPaths(tmp_path, MissionConfig(mission_dir_name=".work"))

        assert paths.backlog_path == tmp_path / ".work" / "backlog.md"

    def test_engines_use_the_same_files(self, paths: MissionPaths):
        assert BacklogManager(paths.mission_dir).backlog_path == paths.backlog_path
        assert DiagnosisManager(paths.mission_dir).diagnosis_path == paths.diagnosis_path

    def test_ensure_mission_dir(self, paths: MissionPaths):
        assert ensure_mission_dir(paths).unwrap() == paths.mission_dir
        assert paths.mission_dir.is_dir()
        # Idempotent
        assert ensure_mission_dir(paths).is_ok()


class TestMissionId:
    """Tests for mission ID generation and lookup."""

    def test_generate_format(self):
        mission_id = generate_mission_id(datetime(2026, 10, 19, 14, 22, 33))

        assert mission_id.startswith("20261019142233-")
        assert is_valid_mission_id(mission_id)

    @pytest.mark.parametrize("value", ["", "abc", "2026-1234", "20261019142233-12345"])
    def test_invalid_ids(self, value):
        assert not is_valid_mission_id(value)

    def test_get_or_create_is_stable(self, paths: MissionPaths):
        first = get_or_create_mission_id(paths).unwrap()
        second = get_or_create_mission_id(paths).unwrap()

        assert first == second
        assert paths.id_path.read_text().strip() == first

    def test_current_requires_existing(self, paths: MissionPaths):
        error = get_current_mission_id(paths).unwrap_err()

        assert error.code == ErrorKind.NOT_FOUND
        assert not paths.mission_dir.exists()

    def test_current_reads_id_file(self, paths: MissionPaths):
        created = get_or_create_mission_id(paths).unwrap()

        assert get_current_mission_id(paths).unwrap() == created

    def test_mission_file_wins(self, paths: MissionPaths):
        get_or_create_mission_id(paths).unwrap()
        paths.mission_path.write_text("---\nid: planner-42\nstatus: active\n---\n## INTENT\nShip\n")

        assert get_current_mission_id(paths).unwrap() == "planner-42"

    def test_unreadable_mission_file_falls_back(self, paths: MissionPaths):
        created = get_or_create_mission_id(paths).unwrap()
        paths.mission_path.write_text("---\nid: [broken\n")

        assert get_current_mission_id(paths).unwrap() == created

    def test_corrupt_id_file(self, paths: MissionPaths):
        paths.mission_dir.mkdir()
        paths.id_path.write_text("not an id\n")

        assert get_or_create_mission_id(paths).unwrap_err().code == ErrorKind.MALFORMED


class TestMissionStatus:
    """Tests for read_mission_status()."""

    def test_missing(self, paths: MissionPaths):
        assert read_mission_status(paths) == "unknown"

    def test_reads_status(self, paths: MissionPaths):
        paths.mission_dir.mkdir()
        paths.mission_path.write_text("---\nstatus: active\n---\n")

        assert read_mission_status(paths) == "active"

    def test_no_status_field(self, paths: MissionPaths):
        paths.mission_dir.mkdir()
        paths.mission_path.write_text("## INTENT\nShip\n")

        assert read_mission_status(paths) == "unknown"
