"""Configuration management for Mission Toolkit.

Storage Structure
-----------------
All state is project-local, next to the user's source repository:

<project>/.mission/           # Mission artifacts (human-readable markdown)
├── backlog.md                # Typed backlog with frontmatter
├── diagnosis.md              # Active debug investigation
├── mission.md                # Current mission (written by the planner)
├── id                        # Current mission ID
└── config.yaml               # Optional overrides for MissionConfig

<project>/.git/refs/checkpoints/<missionID>-<N>   # Checkpoint snapshots

Configuration
-------------
**MissionConfig**
    Cascade: environment → project .mission/config.yaml → defaults
    - mission_dir_name: Name of the mission directory
    - checkpoint_ref_prefix: Ref namespace for checkpoints
    - git_timeout: Seconds before a git call is abandoned
    - dir_mode, file_mode: Permissions for created directories/files
    - log_level, log_file: Logging setup used by the CLI
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from mission_toolkit.errors import Err, MissionError, Ok, Result, io_error, malformed

logger = logging.getLogger(__name__)

MISSION_DIR_NAME = ".mission"
CONFIG_FILENAME = "config.yaml"

# Environment overrides
ENV_LOG_LEVEL = "MISSION_LOG_LEVEL"
ENV_GIT_TIMEOUT = "MISSION_GIT_TIMEOUT"


@dataclass
class MissionConfig:
    """Tunable settings for the mission engines and CLI."""

    mission_dir_name: str = MISSION_DIR_NAME
    checkpoint_ref_prefix: str = "refs/checkpoints/"
    git_timeout: int = 30
    dir_mode: int = 0o755
    file_mode: int = 0o644
    log_level: str = "WARNING"
    log_file: str | None = None

    @classmethod
    def load(cls, project_root: Path | None = None) -> "MissionConfig":
        """Load config for a project.

        Args:
            project_root: Directory containing .mission/. If None, auto-detects.

        Returns:
            MissionConfig with file values and environment overrides applied;
            defaults plus environment if the config file cannot be read
        """
        result = load_config(project_root)
        if result.is_ok():
            return result.unwrap()

        logger.warning(f"Using default config: {result.unwrap_err()}")
        return cls()._apply_env()

    def _apply_env(self) -> "MissionConfig":
        """Apply environment overrides in place and return self."""
        if env_level := os.environ.get(ENV_LOG_LEVEL):
            self.log_level = env_level.upper()
        if env_timeout := os.environ.get(ENV_GIT_TIMEOUT):
            try:
                self.git_timeout = int(env_timeout)
            except ValueError:
                pass

        return self

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "MissionConfig":
        """Create config from a dict, ignoring unknown keys."""
        valid_fields = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in valid_fields})

    def save(self, project_root: Path) -> Path:
        """Save non-default values to <project_root>/.mission/config.yaml.

        Returns:
            Path to saved config file
        """
        mission_dir = Path(project_root) / self.mission_dir_name
        mission_dir.mkdir(parents=True, exist_ok=True, mode=self.dir_mode)
        config_path = mission_dir / CONFIG_FILENAME

        defaults = MissionConfig()
        data = {k: v for k, v in self.to_dict().items() if getattr(defaults, k) != v}

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False)
        config_path.chmod(self.file_mode)

        return config_path

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


def load_config(project_root: Path | None = None) -> Result[MissionConfig, MissionError]:
    """Load config for a project, reporting an unreadable config file.

    Returns:
        Ok(MissionConfig) with environment overrides applied, Err(malformed)
        for invalid YAML or a non-mapping document, Err(io_error) if the
        file cannot be read
    """
    if project_root is None:
        project_root = detect_project_root()

    config = MissionConfig()
    if project_root is not None:
        config_path = Path(project_root) / MISSION_DIR_NAME / CONFIG_FILENAME
        if config_path.exists():
            try:
                with open(config_path, encoding="utf-8") as f:
                    overrides = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                problem = " ".join(str(e).split())
                return Err(malformed(f"invalid config {config_path}: {problem}", path=str(config_path)))
            except (OSError, UnicodeDecodeError) as e:
                return Err(io_error(f"reading {config_path}: {e}", path=str(config_path)))

            if not isinstance(overrides, dict):
                return Err(
                    malformed(
                        f"config {config_path} must be a mapping, got {type(overrides).__name__}",
                        path=str(config_path),
                    )
                )
            config = MissionConfig._from_dict(overrides)

    return Ok(config._apply_env())


def detect_project_root(start_path: Path | None = None) -> Path | None:
    """Detect project root by traversing up from start_path looking for markers.

    Looks for (in order of priority at each level):
    1. A .mission directory
    2. A .git entry (directory, or file for worktrees)

    Args:
        start_path: Starting path for traversal. Defaults to cwd.

    Returns:
        Project root path, or None if no project markers found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()

    while True:
        if (current / MISSION_DIR_NAME).is_dir():
            return current
        if (current / ".git").exists():
            return current
        if current == current.parent:
            return None
        current = current.parent
