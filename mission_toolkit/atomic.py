"""Atomic file IO for the .mission/ directory.

Every document write goes through atomic_write_text(), which uses the
temp file + rename pattern so that a crash mid-write never leaves a
half-written backlog or diagnosis behind.

All functions return Result types for explicit error handling.

Permissions:
- Files are created with 0o644 by default
- Parent directories are created with 0o755
- Temp files are cleaned up on failure
"""

import logging
import os
import tempfile
from pathlib import Path

from mission_toolkit.errors import Err, Ok, Result, MissionError, io_error, not_found

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


def atomic_write_text(
    path: Path,
    content: str,
    mode: int = DEFAULT_FILE_MODE,
    dir_mode: int = DEFAULT_DIR_MODE,
) -> Result[Path, MissionError]:
    """Atomically write text content to a file.

    Creates parent directories if they don't exist.

    Args:
        path: Target file path
        content: Text content to write
        mode: File permissions (default 0o644)
        dir_mode: Permissions for created parent directories (default 0o755)

    Returns:
        Ok(path) on success, Err(MissionError) on failure

    Example:
        result = atomic_write_text(Path(".mission/backlog.md"), text)
        if result.is_ok():
            print(f"Written to {result.unwrap()}")
    """
    path = Path(path)
    temp_path: str | None = None

    try:
        path.parent.mkdir(parents=True, exist_ok=True, mode=dir_mode)

        # Temp file must live in the same directory for the rename to be atomic
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}_",
            suffix=f"{path.suffix}.tmp",
        )

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)

            os.chmod(temp_path, mode)
            os.replace(temp_path, path)

            logger.debug(f"Atomic write complete: {path}")
            return Ok(path)

        except Exception:
            _cleanup_temp(temp_path)
            raise

    except PermissionError as e:
        logger.error(f"Permission denied writing {path}: {e}")
        return Err(io_error(f"permission denied writing {path}", path=str(path)))

    except OSError as e:
        logger.error(f"OS error writing {path}: {e}")
        return Err(io_error(f"failed to write {path}: {e}", path=str(path), error=str(e)))

    except Exception as e:
        logger.error(f"Unexpected error writing {path}: {e}")
        _cleanup_temp(temp_path)
        return Err(io_error(f"unexpected error writing {path}: {e}", path=str(path), error=str(e)))


def read_text(path: Path) -> Result[str, MissionError]:
    """Read a UTF-8 text file.

    Returns:
        Ok(content), Err(not_found) if the file is missing, Err(io_error) otherwise
    """
    path = Path(path)
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(not_found(f"file not found: {path}", path=str(path)))
    except UnicodeDecodeError as e:
        return Err(io_error(f"{path} is not valid UTF-8: {e}", path=str(path)))
    except OSError as e:
        return Err(io_error(f"reading {path}: {e}", path=str(path), error=str(e)))


def _cleanup_temp(temp_path: str | None) -> None:
    """Clean up temporary file, ignoring errors."""
    if temp_path is None:
        return

    try:
        os.unlink(temp_path)
        logger.debug(f"Cleaned up temp file: {temp_path}")
    except OSError:
        # Temp file may already be gone
        pass
