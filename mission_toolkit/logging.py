"""Logging setup for Mission Toolkit.

Library modules only ever call logging.getLogger(__name__); nothing is
printed unless the CLI (or an embedding application) calls
configure_logging().

Console output goes to stderr through rich so that JSON envelopes on
stdout stay machine-readable.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "mission_toolkit"

_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the mission_toolkit namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(level: str | int = "WARNING", log_file: Path | str | None = None) -> None:
    """Install handlers on the package logger.

    Safe to call more than once; handlers are replaced, not duplicated.

    Args:
        level: Level name or number (e.g. "DEBUG")
        log_file: Optional file that receives the same records in plain text
    """
    logger = logging.getLogger(ROOT_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    logger.propagate = False


# =============================================================================
# Event helpers
# =============================================================================

_events = get_logger("events")


def log_backlog_change(action: str) -> None:
    """Record a successful backlog mutation."""
    _events.info(f"backlog: {action}")


def log_diagnosis_event(event: str, diagnosis_id: str) -> None:
    """Record a diagnosis lifecycle event (created, updated, finalized)."""
    _events.info(f"diagnosis {event}: {diagnosis_id}")


def log_checkpoint_event(event: str, name: str) -> None:
    """Record a checkpoint lifecycle event (e.g. created, reverted, consolidated)."""
    _events.info(f"checkpoint {event}: {name}")
